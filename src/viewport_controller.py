"""
Interactive map viewport bound to the active point of a work record.

Dragging the map moves the active point to the viewport center. Switching
the active point flies the camera to it. While the camera is flying, the
intermediate center-changed events must not be written back, otherwise the
destination point is overwritten by animation frames. A FlightLock guards
the one write path.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

from config import BOOTSTRAP_ZOOM, FLY_DURATION_S, NOMINAL_ACCURACY_M
from src.errors import LocationUnavailable
from src.location_acquisition import LocationProvider, WatchOptions
from src.models import GeoPoint, PointSlot, WorkRecord

logger = logging.getLogger(__name__)


class MapView(Protocol):
    """Pannable/zoomable map surface."""

    def fly_to(self, lat: float, lon: float, zoom: float, duration_s: float) -> None:
        """Start an eased camera transition. Completion is signalled by move-end."""
        ...

    def get_center(self) -> tuple[float, float]: ...

    def get_zoom(self) -> float: ...


class FlightLock:
    """Two-state latch: engaged while the camera moves programmatically."""

    def __init__(self):
        self._engaged = False

    @property
    def engaged(self) -> bool:
        return self._engaged

    def engage(self) -> None:
        self._engaged = True

    def release(self) -> None:
        self._engaged = False


class ViewportController:
    """Keeps a MapView and the active point of a WorkRecord in sync."""

    def __init__(
        self,
        view: MapView,
        record: WorkRecord,
        active: PointSlot = PointSlot.A,
        fly_duration_s: float = FLY_DURATION_S,
    ):
        self.view = view
        self.record = record
        self.active = active
        self.fly_duration_s = fly_duration_s
        self.lock = FlightLock()
        self._bootstrapped = False

    # --- Active target ---

    def set_active_target(self, slot: PointSlot) -> None:
        """Make slot the active target and fly to its point if it has one."""
        self.active = slot
        point = self.record.get_point(slot)
        if point is None:
            logger.debug(f"Active target {slot.value} has no point, camera stays put")
            return

        self.lock.engage()
        self.view.fly_to(point.latitude, point.longitude, self.view.get_zoom(), self.fly_duration_s)
        logger.debug(f"Flying to point {slot.value}, writes suspended")

    def toggle_target(self) -> None:
        self.set_active_target(self.active.other)

    def select_marker(self, slot: PointSlot) -> None:
        """Switch to a tapped marker. It is on screen already, so no flight."""
        if slot is self.active:
            return
        self.active = slot
        logger.debug(f"Marker {slot.value} selected")

    # --- Map events ---

    def on_drag_start(self) -> None:
        if self.lock.engaged:
            logger.debug("Drag started mid-flight, releasing flight lock")
        self.lock.release()

    def on_move_end(self) -> None:
        self.lock.release()

    def on_center_changed(self, lat: float, lon: float) -> bool:
        """
        Handle a viewport-center-changed event.

        Returns:
            True if the active point was updated.
        """
        if self.lock.engaged:
            logger.debug(f"Ignoring center ({lat:.6f}, {lon:.6f}) during flight")
            return False
        self._write_active_point(lat, lon)
        return True

    def _write_active_point(self, lat: float, lon: float) -> None:
        self.record.set_point(
            self.active,
            GeoPoint(
                latitude=lat,
                longitude=lon,
                accuracy=NOMINAL_ACCURACY_M,
                captured_at=datetime.now(timezone.utc),
            ),
        )

    # --- Device location ---

    def bootstrap(self, provider: Optional[LocationProvider]) -> bool:
        """
        Seed the active point from a one-shot device fix on first load.

        Only runs once, and only when neither point is set. An unavailable
        or denied provider is skipped silently.

        Returns:
            True if the active point was seeded.
        """
        if self._bootstrapped:
            return False
        self._bootstrapped = True

        if provider is None or self.record.point_a is not None or self.record.point_b is not None:
            return False

        try:
            sample = provider.current_position(WatchOptions())
        except LocationUnavailable as e:
            logger.debug(f"Skipping initial location fix: {e}")
            return False

        # A point may have been placed while waiting for the fix
        if self.record.point_a is not None or self.record.point_b is not None:
            return False

        self.lock.engage()
        self.view.fly_to(sample.latitude, sample.longitude, BOOTSTRAP_ZOOM, self.fly_duration_s)
        self.record.set_point(
            self.active,
            GeoPoint(
                latitude=sample.latitude,
                longitude=sample.longitude,
                accuracy=sample.accuracy,
                captured_at=sample.timestamp,
            ),
        )
        logger.info(f"Seeded point {self.active.value} from device location")
        return True

    def locate_me(self, provider: LocationProvider) -> bool:
        """Move the camera to the device location. Never writes point data."""
        try:
            sample = provider.current_position(WatchOptions())
        except LocationUnavailable as e:
            logger.info(f"Device location unavailable: {e}")
            return False

        self.lock.engage()
        self.view.fly_to(sample.latitude, sample.longitude, self.view.get_zoom(), self.fly_duration_s)
        return True
