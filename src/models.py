"""
Work record data model.

A work record is one cable/conduit job: a name, a scope, two points,
the distance between them, and the photos taken on site.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from src.utils.geo_utils import Coord, point_distance

logger = logging.getLogger(__name__)


class WorkType(Enum):
    HAND_HOLE_TO_POLE = "Hand Hole ➡️ Pole"
    HAND_HOLE_TO_HAND_HOLE = "Hand Hole ➡️ Hand Hole"

    @property
    def label(self) -> str:
        return self.value


class PointSlot(Enum):
    A = "A"
    B = "B"

    @property
    def other(self) -> "PointSlot":
        return PointSlot.B if self is PointSlot.A else PointSlot.A


@dataclass(frozen=True)
class GeoPoint:
    """A confirmed location. Accuracy and timestamp are informational."""
    latitude: float
    longitude: float
    accuracy: float = 0.0
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def coord(self) -> Coord:
        return (self.latitude, self.longitude)


@dataclass
class WorkRecord:
    """
    In-progress capture of one job.

    distance_meters is derived from the two points unless a manual
    override is set. The override stays in force until it is cleared,
    including across a point retake.
    """
    name: str = ""
    work_type: Optional[WorkType] = None
    point_a: Optional[GeoPoint] = None
    point_b: Optional[GeoPoint] = None
    photos: List[Path] = field(default_factory=list)
    _distance_override: Optional[float] = field(default=None, repr=False)

    def get_point(self, slot: PointSlot) -> Optional[GeoPoint]:
        return self.point_a if slot is PointSlot.A else self.point_b

    def set_point(self, slot: PointSlot, point: GeoPoint) -> None:
        if slot is PointSlot.A:
            self.point_a = point
        else:
            self.point_b = point
        logger.debug(f"Point {slot.value} set to ({point.latitude:.6f}, {point.longitude:.6f})")

    def clear_point(self, slot: PointSlot) -> None:
        if slot is PointSlot.A:
            self.point_a = None
        else:
            self.point_b = None

    @property
    def has_both_points(self) -> bool:
        return self.point_a is not None and self.point_b is not None

    @property
    def distance_meters(self) -> Optional[float]:
        if self._distance_override is not None:
            return self._distance_override
        if self.point_a is None or self.point_b is None:
            return None
        return point_distance(self.point_a, self.point_b)

    @property
    def has_distance_override(self) -> bool:
        return self._distance_override is not None

    def set_distance_override(self, meters: float) -> None:
        if meters < 0:
            raise ValueError(f"Distance cannot be negative: {meters}")
        self._distance_override = float(meters)

    def clear_distance_override(self) -> None:
        self._distance_override = None

    def add_photo(self, path: Path) -> None:
        self.photos.append(Path(path))

    def remove_photo(self, index: int) -> Path:
        return self.photos.pop(index)
