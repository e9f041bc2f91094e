#!/usr/bin/env python3
"""
Send a field work report from the command line.

Builds a work record from two coordinates and a set of photos, renders the
summary image and KML route file, and sends the batch to Telegram.

Examples:
    python scripts/send_report.py --configure --bot-token 123:ABC --chat-id -100123
    python scripts/send_report.py --name "HH-12 to P-7" --type pole \\
        --point-a 11.5564,104.9282 --point-b 11.5570,104.9290 site1.jpg site2.jpg
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import LOG_DATE_FORMAT, LOG_FORMAT
from src.capture_session import CaptureSession
from src.errors import ConfigurationError, ValidationError
from src.models import GeoPoint, PointSlot, WorkType
from src.utils.settings_store import AppConfig, SettingsStore

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
logger = logging.getLogger("send_report")

WORK_TYPES = {
    "pole": WorkType.HAND_HOLE_TO_POLE,
    "handhole": WorkType.HAND_HOLE_TO_HAND_HOLE,
}


def parse_point(value: str) -> GeoPoint:
    try:
        lat_text, lon_text = value.split(",")
        lat, lon = float(lat_text), float(lon_text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected 'lat,lon', got {value!r}")
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise argparse.ArgumentTypeError(f"Coordinates out of range: {value}")
    return GeoPoint(latitude=lat, longitude=lon)


def configure(store: SettingsStore, args: argparse.Namespace) -> int:
    current = store.load()
    updated = AppConfig(
        telegram_bot_token=args.bot_token or current.telegram_bot_token,
        telegram_chat_id=args.chat_id or current.telegram_chat_id,
        google_maps_api_key=args.maps_key if args.maps_key is not None else current.google_maps_api_key,
    )
    if not updated.is_transport_configured:
        logger.error("Both --bot-token and --chat-id are required")
        return 2
    store.save(updated)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Send an MT field work report to Telegram")
    parser.add_argument("photos", nargs="*", type=Path, help="Site photos to attach")
    parser.add_argument("--name", default="", help="Work name")
    parser.add_argument("--type", choices=sorted(WORK_TYPES), default="pole",
                        help="Work scope (default: pole)")
    parser.add_argument("--point-a", type=parse_point, help="Start point as lat,lon")
    parser.add_argument("--point-b", type=parse_point, help="End point as lat,lon")
    parser.add_argument("--distance", type=float,
                        help="Manual distance in meters (overrides the computed value)")
    parser.add_argument("--configure", action="store_true",
                        help="Save Telegram/Maps settings and exit")
    parser.add_argument("--bot-token", help="Telegram bot token")
    parser.add_argument("--chat-id", help="Telegram chat ID")
    parser.add_argument("--maps-key", help="Google Maps API key for satellite images")
    parser.add_argument("--settings", type=Path, help="Settings file (default: data/settings.json)")
    args = parser.parse_args()

    store = SettingsStore(args.settings) if args.settings else SettingsStore()
    if args.configure:
        return configure(store, args)

    config = store.load()
    session = CaptureSession(config)

    try:
        record = session.start_new(WORK_TYPES[args.type])
    except ConfigurationError as e:
        logger.error(f"{e} Run with --configure first.")
        return 2

    record.name = args.name.strip()
    if args.point_a:
        session.set_point(PointSlot.A, args.point_a)
    if args.point_b:
        session.set_point(PointSlot.B, args.point_b)
    if args.distance is not None:
        record.set_distance_override(args.distance)
    for photo in args.photos:
        record.add_photo(photo)

    if record.distance_meters is not None:
        logger.info(f"Distance A-B: {record.distance_meters:.2f} m")

    try:
        result = session.submit()
    except ValidationError as e:
        logger.error(str(e))
        return 2

    if not result.ok:
        logger.error(result.error)
        return 1

    logger.info("Report sent")
    return 0


if __name__ == "__main__":
    sys.exit(main())
