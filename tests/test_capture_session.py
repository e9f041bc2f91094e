"""Tests for the capture session and report submission."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.capture_session import CaptureSession
from src.errors import ConfigurationError, RenderError, TransportError, ValidationError
from src.location_acquisition import AcquisitionState, LocationSample
from src.models import GeoPoint, PointSlot, WorkType
from src.static_map import RenderedImage
from src.utils.settings_store import AppConfig

CONFIG = AppConfig(telegram_bot_token="TOKEN", telegram_chat_id="-100", google_maps_api_key="")


class FakeTransport:
    def __init__(self, error=None):
        self.error = error
        self.batches = []

    def send_batch(self, chat_id, caption, images, document=None):
        self.batches.append((chat_id, caption, list(images), document))
        if self.error:
            raise self.error


class FakeSynthesizer:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def synthesize(self, record, satellite_api_key=None):
        self.calls.append(satellite_api_key)
        if self.error:
            raise self.error
        return RenderedImage("summary-job.jpg", b"\xff\xd8summary")


class FakeStream:
    def __init__(self, on_sample):
        self.on_sample = on_sample
        self.closed = False

    def close(self):
        self.closed = True


class FakeProvider:
    def __init__(self):
        self.streams = []

    def watch(self, options, on_sample, on_error):
        self.streams.append(FakeStream(on_sample))
        return self.streams[-1]

    def current_position(self, options):
        raise AssertionError("not used")


@pytest.fixture
def photo(tmp_path):
    path = tmp_path / "site.jpg"
    path.write_bytes(b"\xff\xd8photo")
    return path


def ready_session(photo, transport=None, synthesizer=None, config=CONFIG):
    session = CaptureSession(
        config,
        synthesizer=synthesizer or FakeSynthesizer(),
        transport=transport or FakeTransport(),
    )
    record = session.start_new(WorkType.HAND_HOLE_TO_HAND_HOLE)
    record.name = "HH-1 to HH-2"
    session.set_point(PointSlot.A, GeoPoint(latitude=11.5, longitude=104.9))
    session.set_point(PointSlot.B, GeoPoint(latitude=11.6, longitude=105.0))
    record.add_photo(photo)
    return session


class TestValidation:
    def test_missing_name(self, photo):
        session = ready_session(photo)
        session.record.name = "  "
        with pytest.raises(ValidationError, match="work name"):
            session.validate()

    def test_missing_point(self, photo):
        session = ready_session(photo)
        session.record.clear_point(PointSlot.B)
        with pytest.raises(ValidationError, match="both location points"):
            session.validate()

    def test_no_photos(self, photo):
        session = ready_session(photo)
        session.record.remove_photo(0)
        with pytest.raises(ValidationError, match="photo"):
            session.validate()

    def test_validation_runs_before_any_network_call(self, photo):
        transport = FakeTransport()
        synthesizer = FakeSynthesizer()
        session = ready_session(photo, transport=transport, synthesizer=synthesizer)
        session.record.clear_point(PointSlot.A)

        with pytest.raises(ValidationError):
            session.submit()
        assert transport.batches == []
        assert synthesizer.calls == []


class TestSubmit:
    def test_success_sends_one_batch(self, photo):
        transport = FakeTransport()
        session = ready_session(photo, transport=transport)

        result = session.submit()

        assert result.ok
        assert len(transport.batches) == 1
        chat_id, caption, images, document = transport.batches[0]
        assert chat_id == "-100"
        assert "HH-1 to HH-2" in caption
        assert [img.filename for img in images] == ["summary-job.jpg", "site.jpg"]
        assert images[1].data == b"\xff\xd8photo"
        assert document.filename.startswith("hh_1_to_hh_2_")
        assert b"104.9,11.5,0" in document.data

    def test_empty_maps_key_passed_as_none(self, photo):
        synthesizer = FakeSynthesizer()
        ready_session(photo, synthesizer=synthesizer).submit()
        assert synthesizer.calls == [None]

    def test_maps_key_forwarded(self, photo):
        synthesizer = FakeSynthesizer()
        config = AppConfig("TOKEN", "-100", "MAPS")
        ready_session(photo, synthesizer=synthesizer, config=config).submit()
        assert synthesizer.calls == ["MAPS"]

    def test_transport_error_reported_verbatim(self, photo):
        transport = FakeTransport(error=TransportError("Bad Request: chat not found"))
        result = ready_session(photo, transport=transport).submit()

        assert not result.ok
        assert result.error == "Failed to send report: Bad Request: chat not found"

    def test_render_error_reported(self, photo):
        synthesizer = FakeSynthesizer(error=RenderError("encoder missing"))
        transport = FakeTransport()
        result = ready_session(photo, transport=transport, synthesizer=synthesizer).submit()
        assert not result.ok
        assert "encoder missing" in result.error
        assert transport.batches == []

    def test_missing_photo_file_reported(self, photo):
        session = ready_session(photo)
        session.record.add_photo(photo.parent / "gone.jpg")
        result = session.submit()
        assert not result.ok


class TestSessionLifecycle:
    def test_start_new_requires_transport_config(self):
        session = CaptureSession(AppConfig(), transport=FakeTransport())
        with pytest.raises(ConfigurationError):
            session.start_new(WorkType.HAND_HOLE_TO_POLE)

    def test_start_new_resets_record(self, photo):
        session = ready_session(photo)
        record = session.start_new(WorkType.HAND_HOLE_TO_POLE)
        assert record.name == ""
        assert record.point_a is None
        assert record.photos == []
        assert record.work_type is WorkType.HAND_HOLE_TO_POLE

    def test_acquisition_writes_and_retake_clears_record(self):
        provider = FakeProvider()
        session = CaptureSession(CONFIG, provider=provider, transport=FakeTransport())
        session.start_new(WorkType.HAND_HOLE_TO_POLE)

        acq = session.acquisition(PointSlot.A)
        acq.start()
        provider.streams[-1].on_sample(LocationSample(11.5, 104.9, 3.0, None))
        acq.confirm()
        assert session.record.point_a.latitude == 11.5

        acq.retake()
        assert session.record.point_a is None
        assert acq.state is AcquisitionState.IDLE

    def test_start_new_closes_open_streams(self):
        provider = FakeProvider()
        session = CaptureSession(CONFIG, provider=provider, transport=FakeTransport())
        session.start_new(WorkType.HAND_HOLE_TO_POLE)
        session.acquisition(PointSlot.B).start()

        session.start_new(WorkType.HAND_HOLE_TO_POLE)
        assert all(stream.closed for stream in provider.streams)

    def test_acquisition_without_provider(self):
        session = CaptureSession(CONFIG, transport=FakeTransport())
        with pytest.raises(ConfigurationError):
            session.acquisition(PointSlot.A)
