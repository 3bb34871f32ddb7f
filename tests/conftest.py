import math
from collections import deque

import pytest

from neural_racing.physics import CAR_GROUP, CHECKPOINT_GROUP, WALL_GROUP, ContactEvent, RayHit, Subscription
from neural_racing.track import Track

SQUARE = [(0, 0), (400, 0), (400, 400), (0, 400)]


def _segment_intersection(p, p2, q, q2):
    """Return (t along p->p2, point) where two segments cross, or None."""
    rx, ry = p2[0] - p[0], p2[1] - p[1]
    sx, sy = q2[0] - q[0], q2[1] - q[1]
    denom = rx * sy - ry * sx
    if abs(denom) < 1e-12:
        return None
    qpx, qpy = q[0] - p[0], q[1] - p[1]
    t = (qpx * sy - qpy * sx) / denom
    u = (qpx * ry - qpy * rx) / denom
    if 0 <= t <= 1 and 0 <= u <= 1:
        return t, (p[0] + rx * t, p[1] + ry * t)
    return None


class FakeVehicle:
    """Kinematic stand-in: tests set position and speed directly."""

    def __init__(self, body_id):
        self.body_id = body_id
        self.position = (0.0, 0.0)
        self.angle = 0.0
        self.speed = 0.0
        self.controls = (0.0, 0.0, 0.0)

    def place(self, position, angle):
        self.position = tuple(position)
        self.angle = angle

    def set_controls(self, steer, engine_force, brake_force):
        self.controls = (steer, engine_force, brake_force)


class FakeWorld:
    """
    Pure-python physics world. Static boxes are treated as line segments
    along their long side; contacts are scripted with `schedule` and
    delivered on the next step.
    """

    def __init__(self):
        self.boxes = {}
        self.vehicles = []
        self.handlers = {}
        self.pending = deque()
        self.scripted = deque()
        self.steps = 0
        self.clears = 0
        self._next_id = 1
        self._next_token = 1

    def _new_id(self):
        body_id = self._next_id
        self._next_id += 1
        return body_id

    def clear(self):
        self.boxes = {}
        self.vehicles = []
        self.pending.clear()
        self.clears += 1

    def add_static_box(self, center, angle, width, height, group, mask, sensor=False):
        body_id = self._new_id()
        dx, dy = math.cos(angle) * width / 2, math.sin(angle) * width / 2
        self.boxes[body_id] = {
            "start": (center[0] - dx, center[1] - dy),
            "end": (center[0] + dx, center[1] + dy),
            "group": group,
            "mask": mask,
            "sensor": sensor,
        }
        return body_id

    def add_vehicle(self, width, height, mass, group, mask, wheels):
        vehicle = FakeVehicle(self._new_id())
        vehicle.wheels = list(wheels)
        self.vehicles.append(vehicle)
        return vehicle

    def ids_in_group(self, group):
        return [body_id for body_id, box in self.boxes.items() if box["group"] == group]

    @property
    def vehicle(self):
        return self.vehicles[-1]

    def schedule(self, *events):
        """Deliver these contact events during the next step."""
        self.scripted.append(list(events))

    def hit_checkpoint(self, index):
        body = self.ids_in_group(CHECKPOINT_GROUP)[index]
        self.schedule(ContactEvent(self.vehicle.body_id, body, CAR_GROUP, CHECKPOINT_GROUP))

    def hit_wall(self):
        body = self.ids_in_group(WALL_GROUP)[0]
        self.schedule(ContactEvent(body, self.vehicle.body_id, WALL_GROUP, CAR_GROUP))

    def step(self, dt):
        self.steps += 1
        if self.scripted:
            self.pending.extend(self.scripted.popleft())
        while self.pending:
            event = self.pending.popleft()
            for handler in list(self.handlers.values()):
                handler(event)

    def subscribe(self, handler):
        token = self._next_token
        self._next_token += 1
        self.handlers[token] = handler
        return Subscription(lambda: self.handlers.pop(token, None))

    def raycast_closest(self, start, end, mask):
        best = None
        for box in self.boxes.values():
            if not box["group"] & mask:
                continue
            hit = _segment_intersection(start, end, box["start"], box["end"])
            if hit is not None and (best is None or hit[0] < best[0]):
                best = (hit[0], hit[1], box)
        if best is None:
            return None
        t, point, box = best
        wx, wy = box["end"][0] - box["start"][0], box["end"][1] - box["start"][1]
        length = math.hypot(wx, wy)
        normal = (-wy / length, wx / length)
        return RayHit(distance=t * math.dist(start, end), point=point, normal=normal)


@pytest.fixture
def square_track():
    return Track(SQUARE)


@pytest.fixture
def world():
    return FakeWorld()
