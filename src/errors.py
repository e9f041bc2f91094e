"""
Exception types for capture, rendering, export, and delivery.

Only ValidationError, ConfigurationError, and TransportError are meant to
reach the person submitting a report. Rendering failures are absorbed by the
static map synthesizer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


class FieldReportError(Exception):
    """Base class for all errors raised by this project."""


class ValidationError(FieldReportError):
    """Work record is incomplete (name, type, points, or photos missing)."""


class ConfigurationError(FieldReportError):
    """Transport credentials are missing."""


class AcquisitionStateError(FieldReportError):
    """Illegal transition requested on a location acquisition state machine."""


class LocationUnavailable(FieldReportError):
    """Device location provider is unavailable or permission was denied."""


class RenderDegradation(FieldReportError):
    """A background tier could not render; the next tier should be tried."""


class RenderError(FieldReportError):
    """The summary image canvas could not be created or encoded."""


class ExportError(FieldReportError):
    """Route file requested without both coordinates."""


class TransportError(FieldReportError):
    """Messaging transport rejected the batch."""


@dataclass(frozen=True)
class AcquisitionWarning:
    """Advisory provider error seen while searching (e.g. weak signal)."""
    message: str
    code: int = 0
    received_at: datetime | None = None
