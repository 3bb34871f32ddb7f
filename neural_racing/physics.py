"""
Contract between the simulation core and the 2D physics engine.

The core never touches engine objects directly: bodies are referred to by
integer ids, contacts arrive as ContactEvent values and raycasts return
RayHit values.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, Tuple

Vector2 = Tuple[float, float]

WALL_GROUP = 0b10
CAR_GROUP = 0b100
SENSOR_GROUP = 0b1000
CHECKPOINT_GROUP = 0b1_0000


@dataclass(frozen=True)
class ContactEvent:
    body_a: int
    body_b: int
    group_a: int
    group_b: int


@dataclass(frozen=True)
class RayHit:
    distance: float
    point: Vector2
    normal: Vector2


@dataclass(frozen=True)
class WheelSpec:
    local_position: Vector2
    side_friction: float
    brake_force: float = 0.0
    steered: bool = False
    driven: bool = False


class Subscription:
    """Handle for a registered contact handler, released exactly once."""

    def __init__(self, release: Callable[[], None]):
        self._release = release

    @property
    def active(self):
        return self._release is not None

    def release(self):
        if self._release is not None:
            release, self._release = self._release, None
            release()


class Vehicle(Protocol):
    body_id: int
    position: Vector2
    angle: float

    @property
    def speed(self) -> float: ...

    def place(self, position: Vector2, angle: float) -> None: ...

    def set_controls(self, steer: float, engine_force: float, brake_force: float) -> None: ...


class PhysicsWorld(Protocol):
    def clear(self) -> None: ...

    def add_static_box(
        self,
        center: Vector2,
        angle: float,
        width: float,
        height: float,
        group: int,
        mask: int,
        sensor: bool = False,
    ) -> int: ...

    def add_vehicle(
        self,
        width: float,
        height: float,
        mass: float,
        group: int,
        mask: int,
        wheels: Sequence[WheelSpec],
    ) -> Vehicle: ...

    def step(self, dt: float) -> None: ...

    def subscribe(self, handler: Callable[[ContactEvent], None]) -> Subscription: ...

    def raycast_closest(self, start: Vector2, end: Vector2, mask: int) -> Optional[RayHit]: ...
