"""
KML route file for a work record.

Two placemarks (A, B) and the line between them, for opening the job in
Google Earth or any GIS tool. KML coordinates are lon,lat,alt.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from config import DEFAULT_DOCUMENT_DESCRIPTION, DEFAULT_DOCUMENT_NAME
from src.errors import ExportError
from src.models import GeoPoint, WorkRecord

logger = logging.getLogger(__name__)

KML_NAMESPACE = "http://www.opengis.net/kml/2.2"
KML_CONTENT_TYPE = "application/vnd.google-earth.kml+xml"
LINE_STYLE_ID = "lineStyle"
LINE_COLOR = "ff0000ff"  # aabbggrr: opaque red
LINE_WIDTH = "4"


@dataclass
class RouteFile:
    filename: str
    content: str
    content_type: str = KML_CONTENT_TYPE

    @property
    def data(self) -> bytes:
        return self.content.encode("utf-8")


def format_number(value: float) -> str:
    """Plain decimal form of the shortest round-trip repr, without a trailing '.0'."""
    text = format(Decimal(repr(float(value))), "f")
    return text[:-2] if text.endswith(".0") else text


def kml_coordinates(point: GeoPoint) -> str:
    return f"{format_number(point.longitude)},{format_number(point.latitude)},0"


def route_filename(name: str, now: Optional[datetime] = None) -> str:
    """Sanitized work name plus a timestamp so repeated exports don't collide."""
    now = now or datetime.now()
    slug = re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE).lower() or "work"
    return f"{slug}_{now.strftime('%Y%m%d_%H%M%S')}.kml"


def _point_placemark(document: ET.Element, name: str, point: GeoPoint) -> None:
    placemark = ET.SubElement(document, "Placemark")
    ET.SubElement(placemark, "name").text = name
    geometry = ET.SubElement(placemark, "Point")
    ET.SubElement(geometry, "coordinates").text = kml_coordinates(point)


def build_kml(record: WorkRecord) -> str:
    """
    Serialize both points and the connecting line as a KML document.

    Raises:
        ExportError: If either point is missing.
    """
    if record.point_a is None or record.point_b is None:
        raise ExportError("Missing coordinates for KML generation")

    root = ET.Element("kml", {"xmlns": KML_NAMESPACE})
    document = ET.SubElement(root, "Document")
    ET.SubElement(document, "name").text = record.name or DEFAULT_DOCUMENT_NAME
    ET.SubElement(document, "description").text = (
        record.work_type.label if record.work_type else DEFAULT_DOCUMENT_DESCRIPTION
    )

    style = ET.SubElement(document, "Style", {"id": LINE_STYLE_ID})
    line_style = ET.SubElement(style, "LineStyle")
    ET.SubElement(line_style, "color").text = LINE_COLOR
    ET.SubElement(line_style, "width").text = LINE_WIDTH

    _point_placemark(document, "Point A (Start)", record.point_a)
    _point_placemark(document, "Point B (End)", record.point_b)

    route = ET.SubElement(document, "Placemark")
    ET.SubElement(route, "name").text = "Connection Route"
    ET.SubElement(route, "styleUrl").text = f"#{LINE_STYLE_ID}"
    line = ET.SubElement(route, "LineString")
    ET.SubElement(line, "tessellate").text = "1"
    ET.SubElement(line, "coordinates").text = (
        f"{kml_coordinates(record.point_a)} {kml_coordinates(record.point_b)}"
    )

    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


def build_route_file(record: WorkRecord, now: Optional[datetime] = None) -> RouteFile:
    """Build the KML route file attachment for a work record."""
    content = build_kml(record)
    filename = route_filename(record.name, now)
    logger.info(f"Built route file {filename} ({len(content)} bytes)")
    return RouteFile(filename=filename, content=content)
