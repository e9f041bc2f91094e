"""Tests for Telegram report delivery."""

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.errors import TransportError
from src.models import GeoPoint, WorkRecord, WorkType
from src.telegram_transport import Attachment, TelegramTransport, build_caption


def make_record(**kwargs) -> WorkRecord:
    defaults = {
        "name": "HH-12 to Pole 7",
        "work_type": WorkType.HAND_HOLE_TO_POLE,
        "point_a": GeoPoint(latitude=11.5564, longitude=104.9282),
        "point_b": GeoPoint(latitude=11.557, longitude=104.929),
    }
    defaults.update(kwargs)
    return WorkRecord(**defaults)


def api_response(ok=True, description=""):
    response = MagicMock()
    response.status_code = 200 if ok else 400
    response.json.return_value = {"ok": ok, "description": description, "result": {}}
    return response


def image(name="photo.jpg"):
    return Attachment(name, b"\xff\xd8fake", "image/jpeg")


class TestCaption:
    def test_contains_job_details(self):
        caption = build_caption(make_record())
        assert "<b>Job:</b> HH-12 to Pole 7" in caption
        assert "<b>Scope:</b> Hand Hole ➡️ Pole" in caption
        assert "Lat: 11.556400" in caption
        assert "Long: 104.929000" in caption
        assert "📏 <b>Distance:</b>" in caption

    def test_links_escape_ampersands(self):
        caption = build_caption(make_record())
        assert "search/?api=1&amp;query=11.5564,104.9282" in caption
        assert "&amp;origin=11.5564,104.9282&amp;destination=11.557,104.929" in caption

    def test_name_is_html_escaped(self):
        caption = build_caption(make_record(name="A<B> & C"))
        assert "A&lt;B&gt; &amp; C" in caption

    def test_untitled_when_name_empty(self):
        assert "<b>Job:</b> Untitled" in build_caption(make_record(name=""))

    def test_requires_both_points(self):
        with pytest.raises(ValueError):
            build_caption(make_record(point_b=None))


class TestSendBatch:
    def test_single_image_uses_send_photo(self):
        transport = TelegramTransport("TOKEN")
        with patch("src.telegram_transport.requests.post", return_value=api_response()) as post:
            transport.send_batch("-100", "caption", [image()], Attachment("route.kml", b"<kml/>"))

        urls = [call.args[0] for call in post.call_args_list]
        assert urls == [
            "https://api.telegram.org/botTOKEN/sendPhoto",
            "https://api.telegram.org/botTOKEN/sendDocument",
        ]
        photo_call = post.call_args_list[0]
        assert photo_call.kwargs["data"]["caption"] == "caption"
        assert photo_call.kwargs["data"]["parse_mode"] == "HTML"
        assert "photo" in photo_call.kwargs["files"]

    def test_multiple_images_use_media_group(self):
        transport = TelegramTransport("TOKEN")
        images = [image("summary.jpg"), image("a.jpg"), image("b.jpg")]
        with patch("src.telegram_transport.requests.post", return_value=api_response()) as post:
            transport.send_batch("-100", "caption", images)

        assert post.call_count == 1
        call = post.call_args
        assert call.args[0].endswith("/sendMediaGroup")
        media = json.loads(call.kwargs["data"]["media"])
        assert [m["media"] for m in media] == ["attach://photo_0", "attach://photo_1", "attach://photo_2"]
        assert media[0]["caption"] == "caption"
        assert media[1]["caption"] == ""
        assert call.kwargs["files"]["photo_0"][0] == "summary.jpg"

    def test_large_batches_are_chunked(self):
        transport = TelegramTransport("TOKEN")
        images = [image(f"{i}.jpg") for i in range(12)]
        with patch("src.telegram_transport.requests.post", return_value=api_response()) as post:
            transport.send_batch("-100", "caption", images)

        assert post.call_count == 2
        first, second = post.call_args_list
        assert len(json.loads(first.kwargs["data"]["media"])) == 10
        assert len(json.loads(second.kwargs["data"]["media"])) == 2
        assert json.loads(second.kwargs["data"]["media"])[0]["caption"] == ""

    def test_rejection_raises_with_description(self):
        transport = TelegramTransport("TOKEN")
        with patch("src.telegram_transport.requests.post",
                   return_value=api_response(ok=False, description="Bad Request: chat not found")):
            with pytest.raises(TransportError, match="chat not found"):
                transport.send_batch("-100", "caption", [image()])

    def test_document_failure_after_photos(self):
        transport = TelegramTransport("TOKEN")
        responses = [api_response(), api_response(ok=False, description="file too big")]
        with patch("src.telegram_transport.requests.post", side_effect=responses) as post:
            with pytest.raises(TransportError, match="file too big"):
                transport.send_batch("-100", "caption", [image()], Attachment("r.kml", b""))
        assert post.call_count == 2

    def test_network_error_becomes_transport_error(self):
        transport = TelegramTransport("TOKEN")
        with patch("src.telegram_transport.requests.post", side_effect=requests.ConnectionError("no route")):
            with pytest.raises(TransportError, match="no route"):
                transport.send_batch("-100", "caption", [image()])

    def test_non_json_response(self):
        response = MagicMock(status_code=502)
        response.json.side_effect = ValueError("not json")
        transport = TelegramTransport("TOKEN")
        with patch("src.telegram_transport.requests.post", return_value=response):
            with pytest.raises(TransportError, match="502"):
                transport.send_batch("-100", "caption", [image()])

    def test_requires_images(self):
        with pytest.raises(ValueError):
            TelegramTransport("TOKEN").send_batch("-100", "caption", [])

    def test_requires_token(self):
        with pytest.raises(ValueError):
            TelegramTransport("")
