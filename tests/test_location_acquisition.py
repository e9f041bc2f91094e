"""Tests for the location acquisition state machine."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.errors import AcquisitionStateError, AcquisitionWarning, LocationUnavailable
from src.location_acquisition import (
    AcquisitionState,
    LocationAcquisition,
    LocationSample,
    WatchOptions,
)


class FakeStream:
    def __init__(self, on_sample, on_error):
        self.on_sample = on_sample
        self.on_error = on_error
        self.closed = False

    def close(self):
        self.closed = True

    def emit(self, lat, lon, accuracy=5.0):
        # A real provider may still deliver a queued sample after close
        self.on_sample(LocationSample(lat, lon, accuracy, datetime(2025, 1, 1, tzinfo=timezone.utc)))

    def fail(self, message):
        self.on_error(AcquisitionWarning(message=message, code=2))


class FakeProvider:
    def __init__(self):
        self.streams = []
        self.options = []

    def watch(self, options, on_sample, on_error):
        self.options.append(options)
        stream = FakeStream(on_sample, on_error)
        self.streams.append(stream)
        return stream

    @property
    def open_streams(self):
        return [s for s in self.streams if not s.closed]


@pytest.fixture
def provider():
    return FakeProvider()


def test_starts_idle(provider):
    acq = LocationAcquisition(provider, label="A")
    assert acq.state is AcquisitionState.IDLE
    assert not acq.has_open_stream
    assert provider.streams == []


def test_start_opens_one_high_accuracy_stream(provider):
    acq = LocationAcquisition(provider, label="A")
    acq.start()

    assert acq.state is AcquisitionState.SEARCHING
    assert len(provider.open_streams) == 1
    options = provider.options[0]
    assert isinstance(options, WatchOptions)
    assert options.high_accuracy is True
    assert options.maximum_age_s == 0
    assert options.timeout_s == 30


def test_samples_overwrite_candidate(provider):
    acq = LocationAcquisition(provider)
    acq.start()
    provider.streams[0].emit(11.0, 104.0, 20.0)
    provider.streams[0].emit(11.5, 104.5, 4.0)

    assert acq.candidate.latitude == 11.5
    assert acq.candidate.accuracy == 4.0


def test_provider_errors_are_advisory(provider):
    acq = LocationAcquisition(provider)
    acq.start()
    provider.streams[0].fail("Weak GPS signal")

    assert acq.state is AcquisitionState.SEARCHING
    assert not provider.streams[0].closed
    assert acq.last_warning.message == "Weak GPS signal"
    assert acq.last_warning.received_at is not None

    provider.streams[0].emit(11.5, 104.5)
    assert acq.candidate is not None


def test_confirm_locks_latest_candidate_and_closes_stream(provider):
    locked = []
    acq = LocationAcquisition(provider, on_locked=locked.append)
    acq.start()
    provider.streams[0].emit(11.0, 104.0)
    provider.streams[0].emit(11.5, 104.9, 3.0)

    point = acq.confirm()

    assert acq.state is AcquisitionState.LOCKED
    assert (point.latitude, point.longitude, point.accuracy) == (11.5, 104.9, 3.0)
    assert acq.locked_point == point
    assert provider.streams[0].closed
    assert locked == [point]


def test_confirm_without_sample_raises(provider):
    acq = LocationAcquisition(provider)
    acq.start()
    with pytest.raises(AcquisitionStateError):
        acq.confirm()
    assert acq.state is AcquisitionState.SEARCHING
    assert not provider.streams[0].closed


def test_confirm_when_idle_raises(provider):
    with pytest.raises(AcquisitionStateError):
        LocationAcquisition(provider).confirm()


def test_start_while_searching_raises(provider):
    acq = LocationAcquisition(provider)
    acq.start()
    with pytest.raises(AcquisitionStateError):
        acq.start()
    assert len(provider.streams) == 1


def test_samples_after_confirm_are_ignored(provider):
    acq = LocationAcquisition(provider)
    acq.start()
    stream = provider.streams[0]
    stream.emit(11.5, 104.9)
    point = acq.confirm()

    stream.emit(0.0, 0.0)
    assert acq.locked_point == point
    assert acq.candidate is None


def test_retake_resets_and_new_start_opens_fresh_stream(provider):
    resets = []
    acq = LocationAcquisition(provider, on_reset=lambda: resets.append(True))
    acq.start()
    provider.streams[0].emit(11.5, 104.9)
    acq.confirm()

    acq.retake()
    assert acq.state is AcquisitionState.IDLE
    assert acq.locked_point is None
    assert acq.candidate is None
    assert resets == [True]

    acq.start()
    assert len(provider.streams) == 2
    assert provider.streams[1] is not provider.streams[0]
    assert provider.streams[0].closed
    assert provider.open_streams == [provider.streams[1]]


def test_retake_while_searching_closes_stream(provider):
    acq = LocationAcquisition(provider)
    acq.start()
    stale = provider.streams[0]
    acq.retake()

    assert stale.closed
    stale.emit(1.0, 1.0)
    assert acq.candidate is None
    assert acq.state is AcquisitionState.IDLE


def test_stale_stream_cannot_feed_new_search(provider):
    acq = LocationAcquisition(provider)
    acq.start()
    stale = provider.streams[0]
    acq.retake()
    acq.start()

    stale.emit(1.0, 1.0)
    assert acq.candidate is None
    provider.streams[1].emit(11.5, 104.9)
    assert acq.candidate.latitude == 11.5


def test_cancel_returns_to_idle(provider):
    acq = LocationAcquisition(provider)
    acq.start()
    acq.cancel()
    assert acq.state is AcquisitionState.IDLE
    assert provider.streams[0].closed
    assert acq.locked_point is None


class FailingProvider(FakeProvider):
    def __init__(self):
        super().__init__()
        self.enabled = False

    def watch(self, options, on_sample, on_error):
        if not self.enabled:
            raise RuntimeError("location services disabled")
        return super().watch(options, on_sample, on_error)


class EagerProvider(FakeProvider):
    """Delivers a cached fix synchronously while the stream is being opened."""

    def watch(self, options, on_sample, on_error):
        stream = super().watch(options, on_sample, on_error)
        stream.emit(11.55, 104.92)
        return stream


def test_failed_watch_returns_to_idle():
    acq = LocationAcquisition(FailingProvider(), label="A")

    with pytest.raises(LocationUnavailable, match="location services disabled"):
        acq.start()

    assert acq.state is AcquisitionState.IDLE
    assert not acq.has_open_stream
    assert acq.candidate is None


def test_start_can_be_retried_after_failed_watch():
    provider = FailingProvider()
    acq = LocationAcquisition(provider, label="A")
    with pytest.raises(LocationUnavailable):
        acq.start()

    provider.enabled = True
    acq.start()
    assert acq.state is AcquisitionState.SEARCHING
    assert acq.has_open_stream


def test_sample_delivered_while_opening_stream_is_kept():
    acq = LocationAcquisition(EagerProvider(), label="A")
    acq.start()

    assert acq.candidate is not None
    assert acq.candidate.latitude == 11.55
    assert acq.confirm().longitude == 104.92
