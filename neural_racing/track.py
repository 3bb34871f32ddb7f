import math
import os
from dataclasses import dataclass
from typing import Optional

from .config import CHECKPOINT_THICKNESS, DEFAULT_TRACK_WIDTH, WALL_THICKNESS
from .errors import ConfigurationError
from .physics import CAR_GROUP, CHECKPOINT_GROUP, SENSOR_GROUP, WALL_GROUP

TRACKS_DIR = os.path.join(os.path.dirname(__file__), "tracks")

DEFAULT_TRACK_POINTS = [
    (130, 110), (150, 320), (90, 420), (110, 520), (400, 540), (650, 500),
    (700, 420), (660, 360), (560, 360), (400, 400), (320, 360), (300, 240),
    (390, 180), (620, 240), (700, 180), (685, 120), (600, 65), (305, 75),
]


@dataclass(frozen=True)
class TrackPoint:
    position: tuple
    width: Optional[float] = None


@dataclass(frozen=True)
class Wall:
    start: tuple
    end: tuple

    @property
    def center(self):
        return ((self.start[0] + self.end[0]) / 2, (self.start[1] + self.end[1]) / 2)

    @property
    def angle(self):
        return math.atan2(self.end[1] - self.start[1], self.end[0] - self.start[0])

    @property
    def length(self):
        return math.dist(self.start, self.end)


@dataclass(frozen=True)
class Checkpoint(Wall):
    """Sensor gate at the end of centerline segment `index`."""

    index: int = 0
    track_segment_length: float = 0.0
    cumulative_distance: float = 0.0
    last_checkpoint: bool = False

    @property
    def position(self):
        return self.center


def _offset(point, angle, magnitude, sign):
    return (
        point[0] + sign * math.cos(angle) * magnitude,
        point[1] + sign * math.sin(angle) * magnitude,
    )


class Track:
    """
    Walls and checkpoints built around a closed centerline.

    Each vertex is pushed out along the bisector of its two segments by
    half_width / sin(half_angle), which keeps the corridor width constant
    through corners. A vertex where the track doubles back on itself has
    sin(half_angle) == 0 and is rejected; vertices that come close to it
    produce very long offsets and are the caller's responsibility.
    """

    def __init__(self, points, default_width=DEFAULT_TRACK_WIDTH):
        points = [p if isinstance(p, TrackPoint) else TrackPoint(tuple(p)) for p in points]
        if len(points) < 3:
            raise ConfigurationError("Invalid track configuration - track requires at least 3 points")

        n = len(points)
        self.points = points
        self.initial_position = tuple(points[0].position)
        self.initial_angle = 0.0

        left_points = []
        right_points = []
        for i, point in enumerate(points):
            pt0 = points[(i - 1) % n].position
            pt1 = point.position
            pt2 = points[(i + 1) % n].position
            if math.dist(pt1, pt2) == 0:
                raise ConfigurationError(f"Track points {i} and {(i + 1) % n} coincide")

            half_width = ((point.width if point.width is not None else default_width) + WALL_THICKNESS) / 2

            previous_angle = math.atan2(pt0[1] - pt1[1], pt0[0] - pt1[0])
            next_angle = math.atan2(pt2[1] - pt1[1], pt2[0] - pt1[0])
            if i == 0:
                self.initial_angle = next_angle

            bisector = (previous_angle + next_angle) / 2
            sin_half_angle = math.sin((previous_angle - next_angle) / 2)
            if abs(sin_half_angle) < 1e-9:
                raise ConfigurationError(f"Track doubles back on itself at point {i}")

            magnitude = half_width / sin_half_angle
            left_points.append(_offset(pt1, bisector, magnitude, 1))
            right_points.append(_offset(pt1, bisector, magnitude, -1))

        self.left_points = left_points
        self.right_points = right_points

        self.walls = []
        self.checkpoints = []
        self.total_track_length = 0.0
        for i in range(n):
            ni = (i + 1) % n
            segment_length = math.dist(points[i].position, points[ni].position)
            self.total_track_length += segment_length

            self.walls.append(Wall(left_points[i], left_points[ni]))
            self.walls.append(Wall(right_points[i], right_points[ni]))
            self.checkpoints.append(Checkpoint(
                left_points[ni],
                right_points[ni],
                index=i,
                track_segment_length=segment_length,
                cumulative_distance=self.total_track_length,
                last_checkpoint=i == n - 1,
            ))

        self._checkpoints_by_body = {}

    def add_to_world(self, world):
        """Create wall and checkpoint bodies in a freshly cleared world."""
        self._checkpoints_by_body = {}
        for wall in self.walls:
            world.add_static_box(
                wall.center, wall.angle, wall.length, WALL_THICKNESS,
                group=WALL_GROUP, mask=CAR_GROUP | SENSOR_GROUP,
            )
        for checkpoint in self.checkpoints:
            body_id = world.add_static_box(
                checkpoint.center, checkpoint.angle, checkpoint.length, CHECKPOINT_THICKNESS,
                group=CHECKPOINT_GROUP, mask=CAR_GROUP, sensor=True,
            )
            self._checkpoints_by_body[body_id] = checkpoint

    def checkpoint_for_body(self, body_id):
        return self._checkpoints_by_body.get(body_id)

    def __len__(self):
        return len(self.points)


def build_track(points, default_width=DEFAULT_TRACK_WIDTH):
    return Track(points, default_width)


def load_track_csv(path, default_width=DEFAULT_TRACK_WIDTH):
    """Read `x,y[,width]` rows; blank lines and `#` comments are skipped."""
    points = []
    with open(path, "r") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split(",")
            try:
                position = (float(parts[0]), float(parts[1]))
                width = float(parts[2]) if len(parts) > 2 and parts[2].strip() else None
            except (IndexError, ValueError) as e:
                raise ConfigurationError(f"{path}:{line_number}: malformed track point {line!r}") from e
            points.append(TrackPoint(position, width))
    return Track(points, default_width)


def default_track():
    return load_track_csv(os.path.join(TRACKS_DIR, "default.csv"))
