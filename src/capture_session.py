"""
Capture session: one work record from scope selection to delivery.

Owns the WorkRecord, the live acquisition state machine for each point,
and optionally the map viewport. Submission validates the record before
any network call, renders the summary image, builds the KML route file,
and hands everything to the messaging transport as one batch.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from src.errors import ConfigurationError, ExportError, RenderError, TransportError, ValidationError
from src.location_acquisition import LocationAcquisition, LocationProvider
from src.models import GeoPoint, PointSlot, WorkRecord, WorkType
from src.route_export import build_route_file
from src.static_map import StaticMapSynthesizer
from src.telegram_transport import Attachment, MessageTransport, TelegramTransport, build_caption
from src.utils.settings_store import AppConfig
from src.viewport_controller import MapView, ViewportController

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    ok: bool
    error: str = ""


def photo_attachment(path: Path) -> Attachment:
    content_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    return Attachment(filename=path.name, data=path.read_bytes(), content_type=content_type)


class CaptureSession:
    """Drives one work record through capture and submission."""

    def __init__(
        self,
        config: AppConfig,
        provider: Optional[LocationProvider] = None,
        synthesizer: Optional[StaticMapSynthesizer] = None,
        transport: Optional[MessageTransport] = None,
    ):
        self.config = config
        self.provider = provider
        self.synthesizer = synthesizer or StaticMapSynthesizer()
        self._transport = transport
        self.record = WorkRecord()
        self.viewport: Optional[ViewportController] = None
        self.acquisitions: Dict[PointSlot, LocationAcquisition] = {}

        if provider is not None:
            for slot in PointSlot:
                self.acquisitions[slot] = LocationAcquisition(
                    provider,
                    label=slot.value,
                    on_locked=lambda point, slot=slot: self.record.set_point(slot, point),
                    on_reset=lambda slot=slot: self.record.clear_point(slot),
                )

    @property
    def transport(self) -> MessageTransport:
        if self._transport is None:
            self._transport = TelegramTransport(self.config.telegram_bot_token)
        return self._transport

    def start_new(self, work_type: WorkType) -> WorkRecord:
        """
        Begin a fresh record for a work scope.

        Raises:
            ConfigurationError: If Telegram settings are missing.
        """
        if not self.config.is_transport_configured:
            raise ConfigurationError("Please configure Telegram settings first!")

        for acquisition in self.acquisitions.values():
            acquisition.retake()

        self.record = WorkRecord(work_type=work_type)
        if self.viewport is not None:
            self.viewport.record = self.record
        logger.info(f"Started new record: {work_type.label}")
        return self.record

    def attach_viewport(self, view: MapView) -> ViewportController:
        self.viewport = ViewportController(view, self.record)
        self.viewport.bootstrap(self.provider)
        return self.viewport

    def acquisition(self, slot: PointSlot) -> LocationAcquisition:
        if slot not in self.acquisitions:
            raise ConfigurationError("No location provider configured for live capture")
        return self.acquisitions[slot]

    def set_point(self, slot: PointSlot, point: GeoPoint) -> None:
        self.record.set_point(slot, point)

    def validate(self) -> None:
        """
        Check the record is complete. Runs before any network call.

        Raises:
            ValidationError: On the first missing field.
        """
        if not self.record.name.strip():
            raise ValidationError("Please enter a work name.")
        if self.record.work_type is None:
            raise ValidationError("Please select a work type.")
        if not self.record.has_both_points:
            raise ValidationError("Please capture both location points.")
        if not self.record.photos:
            raise ValidationError("Please take at least one photo.")

    def submit(self) -> SubmissionResult:
        """
        Validate, render, export, and send the report.

        Raises:
            ValidationError: If the record is incomplete.
            ConfigurationError: If Telegram settings are missing.

        Returns:
            SubmissionResult with ok=False and the transport message on failure.
        """
        self.validate()
        if not self.config.is_transport_configured:
            raise ConfigurationError("Please configure Telegram settings first!")

        record = self.record
        try:
            summary = self.synthesizer.synthesize(record, self.config.google_maps_api_key or None)
            route_file = build_route_file(record)
            photos: List[Attachment] = [photo_attachment(path) for path in record.photos]
        except (RenderError, ExportError, OSError) as e:
            logger.error(f"Failed to prepare report '{record.name}': {e}")
            return SubmissionResult(ok=False, error=f"Failed to prepare report: {e}")

        images = [Attachment(summary.filename, summary.content, summary.content_type)] + photos
        document = Attachment(route_file.filename, route_file.data, route_file.content_type)

        try:
            self.transport.send_batch(
                self.config.telegram_chat_id,
                build_caption(record),
                images,
                document,
            )
        except TransportError as e:
            logger.error(f"Telegram rejected report '{record.name}': {e}")
            return SubmissionResult(ok=False, error=f"Failed to send report: {e}")

        logger.info(f"Report '{record.name}' sent ({len(images)} images + {document.filename})")
        return SubmissionResult(ok=True)
