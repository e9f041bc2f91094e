"""
Summary image for a work record.

Renders a 1024x1024 JPEG showing both points, the route between them, and
an info card. The map background comes from the first tier that succeeds:

1. Google Static Maps satellite snapshot (needs an API key).
2. OSM tiles stitched at the highest zoom that fits both points.
3. A gradient with a schematic two-node line.

Tier failures are logged and absorbed. Only a failure to create or encode
the canvas itself is raised.
"""

from __future__ import annotations

import logging
import math
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from io import BytesIO
from typing import Dict, List, Optional, Sequence, Tuple

import requests
from PIL import Image, ImageDraw, ImageFilter, ImageFont

from config import (
    FALLBACK_ZOOM,
    JPEG_QUALITY,
    MAP_PADDING_PX,
    MAX_ZOOM,
    NAME_MAX_CHARS,
    SATELLITE_DARKEN_ALPHA,
    STATIC_MAPS_REQUEST_SIZE,
    STATIC_MAPS_TIMEOUT,
    STATIC_MAPS_URL,
    SUMMARY_IMAGE_SIZE,
    TILE_RATE_LIMIT,
    TILE_SIZE,
    TILE_TIMEOUT,
    TILE_URL_TEMPLATE,
    TILE_USER_AGENT,
    TILE_WORKERS,
)
from src.errors import RenderDegradation, RenderError
from src.models import WorkRecord
from src.utils.geo_utils import Coord, Pixel, optimal_zoom, project, tile_range
from src.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

TileKey = Tuple[int, int]

# --- Styling ---
ROUTE_COLOR = (37, 99, 235, 255)  # blue
ROUTE_WIDTH = 6
ROUTE_DASH = (15, 10)
PIN_A_COLOR = (239, 68, 68, 255)  # red
PIN_B_COLOR = (79, 70, 229, 255)  # indigo
PIN_RADIUS = 20
PIN_HEIGHT = 45
PLACEHOLDER_COLOR = (229, 231, 235, 255)
GRADIENT_TOP = (241, 245, 249)
GRADIENT_BOTTOM = (203, 213, 225)
SCHEMATIC_LINE_COLOR = (100, 116, 139, 255)

CARD_MARGIN = 30
CARD_HEIGHT = 380
CARD_RADIUS = 24
CARD_FILL = (255, 255, 255, 242)
CARD_SHADOW = (0, 0, 0, 77)
CARD_TITLE = "WORK RECORD"
TEXT_MUTED = (100, 116, 139, 255)
TEXT_DARK = (15, 23, 42, 255)
TEXT_TYPE = (71, 85, 105, 255)
PILL_FILL = (239, 246, 255, 255)
PILL_OUTLINE = (191, 219, 254, 255)
PILL_TEXT = (29, 78, 216, 255)

FONT_REGULAR = ["DejaVuSans.ttf", "Arial.ttf", "LiberationSans-Regular.ttf"]
FONT_BOLD = ["DejaVuSans-Bold.ttf", "Arial Bold.ttf", "LiberationSans-Bold.ttf"]
FONT_MONO = ["DejaVuSansMono-Bold.ttf", "Courier New Bold.ttf", "LiberationMono-Bold.ttf"]
FONT_KHMER_REGULAR = ["NotoSansKhmer-Regular.ttf", "KhmerOS.ttf", "Battambang-Regular.ttf"]
FONT_KHMER_BOLD = ["NotoSansKhmer-Bold.ttf", "KhmerOSbattambang.ttf", "Battambang-Bold.ttf"]
KHMER_TEXT = re.compile(r"[\u1780-\u17ff\u19e0-\u19ff]")

tile_limiter = RateLimiter(TILE_RATE_LIMIT, name="OSMTiles")


@dataclass
class RenderedImage:
    filename: str
    content: bytes
    content_type: str = "image/jpeg"


@dataclass
class MapLayout:
    """Placement of the two points on the output canvas at a zoom level."""
    zoom: int
    origin: Pixel  # world pixel of canvas top-left
    pixel_a: Pixel  # canvas-relative
    pixel_b: Pixel
    tiles_x: range
    tiles_y: range

    @property
    def tile_count(self) -> int:
        return len(self.tiles_x) * len(self.tiles_y)


def compute_layout(
    coord_a: Coord,
    coord_b: Coord,
    size: int = SUMMARY_IMAGE_SIZE,
    padding: int = MAP_PADDING_PX,
) -> MapLayout:
    """Pick the zoom and viewport that frame both points on a square canvas."""
    zoom = optimal_zoom(coord_a, coord_b, size, size, padding, MAX_ZOOM, FALLBACK_ZOOM)

    ax, ay = project(coord_a[0], coord_a[1], zoom)
    bx, by = project(coord_b[0], coord_b[1], zoom)
    origin_x = (ax + bx) / 2 - size / 2
    origin_y = (ay + by) / 2 - size / 2

    return MapLayout(
        zoom=zoom,
        origin=(origin_x, origin_y),
        pixel_a=(ax - origin_x, ay - origin_y),
        pixel_b=(bx - origin_x, by - origin_y),
        tiles_x=tile_range(origin_x, size),
        tiles_y=tile_range(origin_y, size),
    )


def summary_filename(name: str) -> str:
    slug = re.sub(r"\s+", "_", name)
    return f"summary-{slug}.jpg"


def truncate_name(name: str, limit: int = NAME_MAX_CHARS) -> str:
    return name[:limit] + "..." if len(name) > limit else name


def format_distance(distance: Optional[float]) -> str:
    return f"{distance:.2f}" if distance else "0.00"


# --- Drawing helpers ---

def fonts_for(text: str, candidates: Sequence[str]) -> Sequence[str]:
    """Khmer-capable fonts first when the text has Khmer script in it."""
    if not KHMER_TEXT.search(text):
        return candidates
    khmer = FONT_KHMER_BOLD if candidates is FONT_BOLD else FONT_KHMER_REGULAR
    return [*khmer, *candidates]


def _load_font(candidates: Sequence[str], size: int) -> ImageFont.ImageFont:
    for name in candidates:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def _draw_centered(
    draw: ImageDraw.ImageDraw, center: Pixel, text: str, font: ImageFont.ImageFont, fill
) -> None:
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = center[0] - (right - left) / 2 - left
    y = center[1] - (bottom - top) / 2 - top
    draw.text((x, y), text, font=font, fill=fill)


def _draw_dashed_line(
    draw: ImageDraw.ImageDraw,
    start: Pixel,
    end: Pixel,
    fill,
    width: int = ROUTE_WIDTH,
    dash: Tuple[int, int] = ROUTE_DASH,
) -> None:
    length = math.hypot(end[0] - start[0], end[1] - start[1])
    if length == 0:
        return
    ux = (end[0] - start[0]) / length
    uy = (end[1] - start[1]) / length
    on, off = dash

    pos = 0.0
    while pos < length:
        seg_end = min(pos + on, length)
        draw.line(
            [
                (start[0] + ux * pos, start[1] + uy * pos),
                (start[0] + ux * seg_end, start[1] + uy * seg_end),
            ],
            fill=fill,
            width=width,
        )
        pos = seg_end + off


def _draw_pin(canvas: Image.Image, tip: Pixel, label: str, color) -> None:
    """Teardrop pin whose tip sits on the point, with the label in its head."""
    x, y = tip
    head = (x, y - PIN_HEIGHT)
    r = PIN_RADIUS

    shadow = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    shadow_draw = ImageDraw.Draw(shadow)
    shadow_draw.ellipse((head[0] - r, head[1] - r, head[0] + r, head[1] + r), fill=(0, 0, 0, 128))
    shadow_draw.polygon([(x - r * 0.85, head[1] + r * 0.5), (x + r * 0.85, head[1] + r * 0.5), (x, y)],
                        fill=(0, 0, 0, 128))
    canvas.alpha_composite(shadow.filter(ImageFilter.GaussianBlur(radius=5)))

    draw = ImageDraw.Draw(canvas)
    body = [(x - r * 0.85, head[1] + r * 0.5), (x + r * 0.85, head[1] + r * 0.5), (x, y)]
    draw.polygon(body, fill=color, outline=(255, 255, 255, 255), width=3)
    draw.ellipse((head[0] - r, head[1] - r, head[0] + r, head[1] + r),
                 fill=color, outline=(255, 255, 255, 255), width=3)
    # Cover the outline seam between the head and the body
    draw.polygon([(x - r * 0.6, head[1] + r * 0.4), (x + r * 0.6, head[1] + r * 0.4), (x, y - 6)], fill=color)
    _draw_centered(draw, head, label, _load_font(FONT_BOLD, 24), (255, 255, 255, 255))


# --- Background tiers ---

class MapBackgroundTier:
    """One way of painting the map background. Raise to fall through."""
    name = "base"

    def applies(self, record: WorkRecord, api_key: Optional[str]) -> bool:
        return True

    def render(self, canvas: Image.Image, record: WorkRecord, api_key: Optional[str]) -> None:
        raise NotImplementedError


class SatelliteSnapshotTier(MapBackgroundTier):
    """Satellite snapshot with route and markers baked in by Google."""
    name = "satellite"

    def applies(self, record: WorkRecord, api_key: Optional[str]) -> bool:
        return bool(api_key) and record.has_both_points

    def build_params(self, record: WorkRecord, api_key: str) -> List[Tuple[str, str]]:
        a, b = record.point_a, record.point_b
        size = STATIC_MAPS_REQUEST_SIZE
        return [
            ("size", f"{size}x{size}"),
            ("scale", "2"),
            ("maptype", "satellite"),
            ("key", api_key),
            ("path", f"color:0xffff00ff|weight:5|{a.latitude},{a.longitude}|{b.latitude},{b.longitude}"),
            ("markers", f"color:blue|label:A|{a.latitude},{a.longitude}"),
            ("markers", f"color:red|label:B|{b.latitude},{b.longitude}"),
        ]

    def render(self, canvas: Image.Image, record: WorkRecord, api_key: Optional[str]) -> None:
        response = requests.get(
            STATIC_MAPS_URL,
            params=self.build_params(record, api_key),
            timeout=STATIC_MAPS_TIMEOUT,
        )
        response.raise_for_status()

        snapshot = Image.open(BytesIO(response.content)).convert("RGBA")
        if snapshot.width <= 1 or snapshot.height <= 1:
            raise RenderDegradation("Static Maps returned an empty image")

        snapshot = snapshot.resize(canvas.size, Image.LANCZOS)
        canvas.paste(snapshot, (0, 0))
        overlay = Image.new("RGBA", canvas.size, (0, 0, 0, SATELLITE_DARKEN_ALPHA))
        canvas.alpha_composite(overlay)


class TileMosaicTier(MapBackgroundTier):
    """OSM tiles stitched around the midpoint of the two points."""
    name = "tile_mosaic"

    def __init__(
        self,
        url_template: str = TILE_URL_TEMPLATE,
        limiter: RateLimiter = tile_limiter,
        workers: int = TILE_WORKERS,
    ):
        self.url_template = url_template
        self.limiter = limiter
        self.workers = workers

    def applies(self, record: WorkRecord, api_key: Optional[str]) -> bool:
        return record.has_both_points

    def fetch_tile(self, zoom: int, x: int, y: int) -> Optional[Image.Image]:
        """Fetch one tile. Returns None on any failure."""
        n = 2 ** zoom
        if not 0 <= y < n:
            return None
        x = x % n  # wrap across the antimeridian

        url = self.url_template.format(z=zoom, x=x, y=y)
        self.limiter.wait()
        try:
            response = requests.get(url, headers={"User-Agent": TILE_USER_AGENT}, timeout=TILE_TIMEOUT)
            response.raise_for_status()
            return Image.open(BytesIO(response.content)).convert("RGBA")
        except (requests.RequestException, OSError, Image.DecompressionBombError) as e:
            logger.warning(f"Tile {zoom}/{x}/{y} failed: {e}")
            return None

    def fetch_tiles(self, zoom: int, tiles_x: range, tiles_y: range) -> Dict[TileKey, Optional[Image.Image]]:
        """Fetch all tiles concurrently and wait for every one of them."""
        results: Dict[TileKey, Optional[Image.Image]] = {}
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = {
                executor.submit(self.fetch_tile, zoom, tx, ty): (tx, ty)
                for tx in tiles_x
                for ty in tiles_y
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return results

    def render(self, canvas: Image.Image, record: WorkRecord, api_key: Optional[str]) -> None:
        layout = compute_layout(record.point_a.coord, record.point_b.coord, canvas.width)
        logger.info(
            f"Stitching {layout.tile_count} tiles at zoom {layout.zoom} "
            f"(x {layout.tiles_x.start}..{layout.tiles_x.stop - 1}, "
            f"y {layout.tiles_y.start}..{layout.tiles_y.stop - 1})"
        )

        tiles = self.fetch_tiles(layout.zoom, layout.tiles_x, layout.tiles_y)
        failed = sum(1 for tile in tiles.values() if tile is None)
        if failed == len(tiles):
            raise RenderDegradation(f"All {failed} tiles failed to load")
        if failed:
            logger.warning(f"{failed}/{len(tiles)} tiles replaced by placeholders")

        placeholder = Image.new("RGBA", (TILE_SIZE, TILE_SIZE), PLACEHOLDER_COLOR)
        origin_x, origin_y = layout.origin
        for (tx, ty), tile in tiles.items():
            dest = (round(tx * TILE_SIZE - origin_x), round(ty * TILE_SIZE - origin_y))
            canvas.paste(tile if tile is not None else placeholder, dest)

        draw = ImageDraw.Draw(canvas)
        _draw_dashed_line(draw, layout.pixel_a, layout.pixel_b, ROUTE_COLOR)
        _draw_pin(canvas, layout.pixel_a, "A", PIN_A_COLOR)
        _draw_pin(canvas, layout.pixel_b, "B", PIN_B_COLOR)


class SchematicTier(MapBackgroundTier):
    """Gradient background with two nodes. No geographic basis."""
    name = "schematic"

    def render(self, canvas: Image.Image, record: WorkRecord, api_key: Optional[str]) -> None:
        width, height = canvas.size
        draw = ImageDraw.Draw(canvas)
        for row in range(height):
            t = row / max(height - 1, 1)
            color = tuple(
                round(top + (bottom - top) * t)
                for top, bottom in zip(GRADIENT_TOP, GRADIENT_BOTTOM)
            )
            draw.line([(0, row), (width, row)], fill=color + (255,))

        # Keep the nodes clear of the info card
        node_y = (height - CARD_HEIGHT - CARD_MARGIN) / 2
        node_a = (width * 0.25, node_y)
        node_b = (width * 0.75, node_y)
        _draw_dashed_line(draw, node_a, node_b, SCHEMATIC_LINE_COLOR)

        font = _load_font(FONT_BOLD, 28)
        for (nx, ny), label, color in ((node_a, "A", PIN_A_COLOR), (node_b, "B", PIN_B_COLOR)):
            r = 28
            draw.ellipse((nx - r, ny - r, nx + r, ny + r), fill=color, outline=(255, 255, 255, 255), width=4)
            _draw_centered(draw, (nx, ny), label, font, (255, 255, 255, 255))


DEFAULT_TIERS: Tuple[MapBackgroundTier, ...] = (
    SatelliteSnapshotTier(),
    TileMosaicTier(),
    SchematicTier(),
)


# --- Info card ---

def draw_info_card(canvas: Image.Image, record: WorkRecord) -> None:
    """Rounded card along the bottom with name, type, distance and coordinates."""
    width, height = canvas.size
    left = CARD_MARGIN
    top = height - CARD_HEIGHT - CARD_MARGIN
    right = width - CARD_MARGIN
    bottom = height - CARD_MARGIN

    shadow = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    ImageDraw.Draw(shadow).rounded_rectangle(
        (left, top + 6, right, bottom + 6), radius=CARD_RADIUS, fill=CARD_SHADOW
    )
    canvas.alpha_composite(shadow.filter(ImageFilter.GaussianBlur(radius=20)))

    card = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    ImageDraw.Draw(card).rounded_rectangle((left, top, right, bottom), radius=CARD_RADIUS, fill=CARD_FILL)
    canvas.alpha_composite(card)

    draw = ImageDraw.Draw(canvas)
    cx = width / 2
    content = top + 70

    _draw_centered(draw, (cx, content - 28), CARD_TITLE, _load_font(FONT_BOLD, 24), TEXT_MUTED)
    name = truncate_name(record.name)
    _draw_centered(draw, (cx, content + 34), name, _load_font(fonts_for(name, FONT_BOLD), 54), TEXT_DARK)

    # DejaVu has no emoji glyphs
    type_label = record.work_type.label.replace("➡️", "→") if record.work_type else ""
    _draw_centered(draw, (cx, content + 88), type_label, _load_font(FONT_REGULAR, 36), TEXT_TYPE)

    pill = (cx - 150, content + 130, cx + 150, content + 200)
    draw.rounded_rectangle(pill, radius=35, fill=PILL_FILL, outline=PILL_OUTLINE, width=2)
    _draw_centered(
        draw,
        (cx, content + 165),
        f"{format_distance(record.distance_meters)} m",
        _load_font(FONT_MONO, 44),
        PILL_TEXT,
    )

    footer_font = _load_font(FONT_MONO, 18)
    for offset, label, point in ((235, "A", record.point_a), (265, "B", record.point_b)):
        lat = f"{point.latitude:.6f}" if point else "0.000000"
        lon = f"{point.longitude:.6f}" if point else "0.000000"
        _draw_centered(draw, (cx, content + offset), f"{label}: {lat}, {lon}", footer_font, TEXT_MUTED)


class StaticMapSynthesizer:
    """Renders the summary image through an ordered list of background tiers."""

    def __init__(
        self,
        tiers: Optional[Sequence[MapBackgroundTier]] = None,
        size: int = SUMMARY_IMAGE_SIZE,
        quality: int = JPEG_QUALITY,
    ):
        self.tiers = list(tiers) if tiers is not None else list(DEFAULT_TIERS)
        self.size = size
        self.quality = quality

    def synthesize(self, record: WorkRecord, satellite_api_key: Optional[str] = None) -> RenderedImage:
        """
        Render the summary image for a work record.

        Raises:
            RenderError: If the canvas cannot be created or encoded.
        """
        try:
            canvas = Image.new("RGBA", (self.size, self.size), (255, 255, 255, 255))
        except (ValueError, MemoryError) as e:
            raise RenderError(f"Failed to create canvas: {e}") from e

        tier_used = self.render_background(canvas, record, satellite_api_key)
        draw_info_card(canvas, record)

        buffer = BytesIO()
        try:
            canvas.convert("RGB").save(buffer, format="JPEG", quality=self.quality)
        except (OSError, ValueError) as e:
            raise RenderError(f"Failed to encode summary image: {e}") from e

        content = buffer.getvalue()
        if not content:
            raise RenderError("Summary image encoded to zero bytes")

        logger.info(f"Rendered summary image via {tier_used} tier ({len(content) / 1024:.0f} KB)")
        return RenderedImage(filename=summary_filename(record.name), content=content)

    def render_background(self, canvas: Image.Image, record: WorkRecord, api_key: Optional[str]) -> str:
        """Paint the first background tier that succeeds. Returns its name."""
        for tier in self.tiers:
            if not tier.applies(record, api_key):
                continue
            try:
                tier.render(canvas, record, api_key)
                return tier.name
            except (
                RenderDegradation,
                requests.RequestException,
                OSError,
                ValueError,
                Image.DecompressionBombError,
            ) as e:
                logger.warning(f"Map tier '{tier.name}' failed, falling back: {e}")
                canvas.paste((255, 255, 255, 255), (0, 0, canvas.width, canvas.height))
        return "blank"
