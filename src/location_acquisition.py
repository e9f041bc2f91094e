"""
Live location capture for a single point.

A point is captured by opening a continuous sample stream on the device
location provider, letting the technician watch the candidate fix improve,
then confirming it. Retake throws the point away and returns to idle.

    IDLE --start--> SEARCHING --confirm--> LOCKED
      ^                 |                     |
      +-----cancel------+                     |
      +----------------retake-----------------+
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

from config import LOCATION_TIMEOUT_S
from src.errors import AcquisitionStateError, AcquisitionWarning, LocationUnavailable
from src.models import GeoPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationSample:
    """One raw fix delivered by the provider."""
    latitude: float
    longitude: float
    accuracy: float
    timestamp: datetime


@dataclass(frozen=True)
class WatchOptions:
    high_accuracy: bool = True
    maximum_age_s: float = 0  # never accept cached fixes
    timeout_s: float = LOCATION_TIMEOUT_S


class StreamHandle(Protocol):
    def close(self) -> None: ...


class LocationProvider(Protocol):
    """Device location source."""

    def watch(
        self,
        options: WatchOptions,
        on_sample: Callable[[LocationSample], None],
        on_error: Callable[[AcquisitionWarning], None],
    ) -> StreamHandle:
        """Open a continuous stream. Runs until the handle is closed."""
        ...

    def current_position(self, options: WatchOptions) -> LocationSample:
        """One-shot fix. Raises LocationUnavailable when denied or absent."""
        ...


class AcquisitionState(Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    LOCKED = "locked"


class LocationAcquisition:
    """State machine for capturing one point from a live sample stream."""

    def __init__(
        self,
        provider: LocationProvider,
        label: str = "",
        options: Optional[WatchOptions] = None,
        on_locked: Optional[Callable[[GeoPoint], None]] = None,
        on_reset: Optional[Callable[[], None]] = None,
    ):
        """
        Args:
            provider: Device location provider.
            label: Human-readable name for logging (e.g. "A").
            options: Stream options. Defaults to high accuracy, no cache, 30s.
            on_locked: Called with the GeoPoint when a fix is confirmed.
            on_reset: Called after a retake discards the point.
        """
        self.provider = provider
        self.label = label or "point"
        self.options = options or WatchOptions()
        self.on_locked = on_locked
        self.on_reset = on_reset

        self.state = AcquisitionState.IDLE
        self.candidate: Optional[LocationSample] = None
        self.last_warning: Optional[AcquisitionWarning] = None
        self.locked_point: Optional[GeoPoint] = None
        self._stream: Optional[StreamHandle] = None
        self._stream_id = 0

    @property
    def has_open_stream(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        """Open a fresh sample stream and begin searching."""
        if self.state is not AcquisitionState.IDLE:
            raise AcquisitionStateError(
                f"Cannot start acquisition for {self.label} while {self.state.value}"
            )

        self._close_stream()
        self._stream_id += 1
        stream_id = self._stream_id

        self.candidate = None
        self.last_warning = None
        self.state = AcquisitionState.SEARCHING
        try:
            self._stream = self.provider.watch(
                self.options,
                lambda sample: self._handle_sample(stream_id, sample),
                lambda warning: self._handle_error(stream_id, warning),
            )
        except Exception as e:
            self.candidate = None
            self.state = AcquisitionState.IDLE
            logger.error(f"[{self.label}] Could not open location stream: {e}")
            raise LocationUnavailable(f"Could not open location stream: {e}") from e
        logger.info(f"[{self.label}] Searching for location (stream #{stream_id})")

    def confirm(self) -> GeoPoint:
        """Lock the latest candidate as this point's GeoPoint."""
        if self.state is not AcquisitionState.SEARCHING:
            raise AcquisitionStateError(
                f"Cannot confirm {self.label} while {self.state.value}"
            )
        if self.candidate is None:
            raise AcquisitionStateError(f"No location sample received yet for {self.label}")

        sample = self.candidate
        self._close_stream()

        point = GeoPoint(
            latitude=sample.latitude,
            longitude=sample.longitude,
            accuracy=sample.accuracy,
            captured_at=sample.timestamp or datetime.now(timezone.utc),
        )
        self.locked_point = point
        self.candidate = None
        self.state = AcquisitionState.LOCKED
        logger.info(
            f"[{self.label}] Locked at ({point.latitude:.6f}, {point.longitude:.6f}) "
            f"±{point.accuracy:.0f}m"
        )

        if self.on_locked:
            self.on_locked(point)
        return point

    def cancel(self) -> None:
        """Stop searching without locking a point."""
        if self.state is not AcquisitionState.SEARCHING:
            return
        self._close_stream()
        self.candidate = None
        self.state = AcquisitionState.IDLE
        logger.info(f"[{self.label}] Search cancelled")

    def retake(self) -> None:
        """Discard any stream, candidate, and locked point and return to idle."""
        self._close_stream()
        self.candidate = None
        self.last_warning = None
        self.locked_point = None
        self.state = AcquisitionState.IDLE
        logger.info(f"[{self.label}] Retake requested, point cleared")

        if self.on_reset:
            self.on_reset()

    def _close_stream(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        stream.close()
        logger.debug(f"[{self.label}] Closed stream #{self._stream_id}")

    def _is_live(self, stream_id: int) -> bool:
        return (
            stream_id == self._stream_id
            and self.state is AcquisitionState.SEARCHING
        )

    def _handle_sample(self, stream_id: int, sample: LocationSample) -> None:
        if not self._is_live(stream_id):
            logger.debug(f"[{self.label}] Dropping sample from closed stream #{stream_id}")
            return
        self.candidate = sample

    def _handle_error(self, stream_id: int, warning: AcquisitionWarning) -> None:
        if not self._is_live(stream_id):
            return
        if warning.received_at is None:
            warning = AcquisitionWarning(
                message=warning.message,
                code=warning.code,
                received_at=datetime.now(timezone.utc),
            )
        self.last_warning = warning
        logger.warning(f"[{self.label}] Location provider warning: {warning.message}")
