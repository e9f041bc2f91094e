"""
Report delivery over the Telegram Bot API.

A report is one batch: the images (summary first, then site photos) with
an HTML caption, followed by the KML route file as a document. A failure
anywhere in the batch raises TransportError with Telegram's description;
messages already delivered earlier in the batch stay delivered.
"""

from __future__ import annotations

import html
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import requests

from config import TELEGRAM_API_URL, TELEGRAM_MEDIA_GROUP_LIMIT, TELEGRAM_TIMEOUT
from src.errors import TransportError
from src.models import GeoPoint, WorkRecord

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    filename: str
    data: bytes
    content_type: str = "application/octet-stream"


class MessageTransport(Protocol):
    def send_batch(
        self,
        chat_id: str,
        caption: str,
        images: Sequence[Attachment],
        document: Optional[Attachment] = None,
    ) -> None: ...


def _maps_link(point: GeoPoint) -> str:
    return f"https://www.google.com/maps/search/?api=1&query={point.latitude},{point.longitude}"


def build_caption(record: WorkRecord) -> str:
    """HTML caption with job details, coordinates and map links."""
    a, b = record.point_a, record.point_b
    if a is None or b is None:
        raise ValueError("Caption requires both points")

    lines = [
        "👷 <b>MT Work Report</b>",
        f"<b>Job:</b> {html.escape(record.name or 'Untitled')}",
        f"<b>Scope:</b> {html.escape(record.work_type.label if record.work_type else '')}",
    ]
    if record.distance_meters:
        lines.append(f"📏 <b>Distance:</b> {record.distance_meters:.2f}m")

    for title, point in (("Point A (Start)", a), ("Point B (End)", b)):
        lines += [
            "",
            f"📍 <b>{title}:</b>",
            f"Lat: {point.latitude:.6f}",
            f"Long: {point.longitude:.6f}",
            f'<a href="{html.escape(_maps_link(point))}">View on Map</a>',
        ]

    route_url = (
        "https://www.google.com/maps/dir/?api=1"
        f"&origin={a.latitude},{a.longitude}"
        f"&destination={b.latitude},{b.longitude}"
    )
    lines += ["", "🗺️ <b>Route:</b>", f'<a href="{html.escape(route_url)}">Open Route</a>']
    return "\n".join(lines)


class TelegramTransport:
    """Sends report batches to a Telegram chat through a bot."""

    def __init__(self, bot_token: str, api_url: str = TELEGRAM_API_URL, timeout: float = TELEGRAM_TIMEOUT):
        if not bot_token:
            raise ValueError("Telegram bot token is required")
        self.base_url = f"{api_url}/bot{bot_token}"
        self.timeout = timeout

    def _call(self, method: str, data: dict, files: dict) -> dict:
        try:
            response = requests.post(
                f"{self.base_url}/{method}",
                data=data,
                files=files,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} request failed: {e}") from e

        try:
            result = response.json()
        except ValueError:
            raise TransportError(f"{method} returned HTTP {response.status_code}")

        if not result.get("ok"):
            raise TransportError(result.get("description", f"{method} failed"))
        return result

    def send_photo(self, chat_id: str, photo: Attachment, caption: str = "") -> None:
        data = {"chat_id": chat_id}
        if caption:
            data.update(caption=caption, parse_mode="HTML")
        self._call("sendPhoto", data, {"photo": (photo.filename, photo.data, photo.content_type)})

    def send_media_group(self, chat_id: str, photos: Sequence[Attachment], caption: str = "") -> None:
        media = []
        files = {}
        for index, photo in enumerate(photos):
            key = f"photo_{index}"
            media.append({
                "type": "photo",
                "media": f"attach://{key}",
                "parse_mode": "HTML",
                "caption": caption if index == 0 else "",
            })
            files[key] = (photo.filename, photo.data, photo.content_type)
        self._call("sendMediaGroup", {"chat_id": chat_id, "media": json.dumps(media)}, files)

    def send_document(self, chat_id: str, document: Attachment) -> None:
        self._call(
            "sendDocument",
            {"chat_id": chat_id},
            {"document": (document.filename, document.data, document.content_type)},
        )

    def send_batch(
        self,
        chat_id: str,
        caption: str,
        images: Sequence[Attachment],
        document: Optional[Attachment] = None,
    ) -> None:
        """
        Send images as photo messages with the caption on the first, then the document.

        Raises:
            TransportError: If Telegram rejects any call in the batch.
        """
        if not images:
            raise ValueError("At least one image is required")

        chunks: List[Sequence[Attachment]] = [
            images[i:i + TELEGRAM_MEDIA_GROUP_LIMIT]
            for i in range(0, len(images), TELEGRAM_MEDIA_GROUP_LIMIT)
        ]
        for index, chunk in enumerate(chunks):
            chunk_caption = caption if index == 0 else ""
            if len(chunk) == 1:
                self.send_photo(chat_id, chunk[0], chunk_caption)
            else:
                self.send_media_group(chat_id, chunk, chunk_caption)
        logger.info(f"Sent {len(images)} images in {len(chunks)} message(s) to chat {chat_id}")

        if document is not None:
            self.send_document(chat_id, document)
            logger.info(f"Sent document {document.filename}")
