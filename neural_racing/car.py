import math
from dataclasses import dataclass
from typing import Optional

from .config import (
    CAR_MASS,
    FRONT_BRAKE_FORCE,
    FRONT_SIDE_FRICTION,
    MOVING_AVERAGE_ALPHA,
    REAR_SIDE_FRICTION,
    SensorOptions,
)
from .physics import CAR_GROUP, CHECKPOINT_GROUP, WALL_GROUP, WheelSpec


@dataclass
class Sensor:
    local_from: tuple
    local_to: tuple
    length: float

    start: tuple = (0.0, 0.0)
    end: tuple = (0.0, 0.0)
    has_hit: bool = False
    hit_distance: Optional[float] = None
    hit_point: Optional[tuple] = None
    hit_normal: Optional[tuple] = None

    @property
    def value(self):
        return self.hit_distance / self.length if self.has_hit else 1.0


def _to_world(local, position, angle):
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    return (
        position[0] + local[0] * cos_a - local[1] * sin_a,
        position[1] + local[0] * sin_a + local[1] * cos_a,
    )


def _build_sensors(body_width, body_height, options):
    sensors = []
    w = body_width * 0.9
    h = body_height * 0.9
    for s in range(options.num_sensors):
        r = 0.5 if options.num_sensors == 1 else s / (options.num_sensors - 1)
        local_from = (-w / 2 + w * r, h / 2)
        angle = options.sensor_angle / 2 - options.sensor_angle * r + math.pi / 2
        local_to = (
            local_from[0] + options.sensor_length * math.cos(angle),
            local_from[1] + options.sensor_length * math.sin(angle),
        )
        sensors.append(Sensor(local_from, local_to, options.sensor_length))
    return sensors


class Car:
    """
    Top-down car with a fan of wall sensors on its front edge.

    The car drives along its local +y axis; wheels 0-1 steer at the front,
    wheels 2-3 drive and brake at the back.
    """

    def __init__(self, world, body_width, body_height, sensor_options=None, mass=CAR_MASS,
                 moving_average_alpha=MOVING_AVERAGE_ALPHA):
        self.width = body_width
        self.height = body_height
        self.moving_average_alpha = moving_average_alpha
        self.sensors = _build_sensors(body_width, body_height, sensor_options or SensorOptions())

        self.vehicle = world.add_vehicle(
            body_width, body_height, mass,
            group=CAR_GROUP, mask=WALL_GROUP | CHECKPOINT_GROUP,
            wheels=[
                WheelSpec((-body_width / 2, body_height / 2), FRONT_SIDE_FRICTION,
                          brake_force=FRONT_BRAKE_FORCE, steered=True),
                WheelSpec((body_width / 2, body_height / 2), FRONT_SIDE_FRICTION,
                          brake_force=FRONT_BRAKE_FORCE, steered=True),
                WheelSpec((-body_width / 2, -body_height / 2), REAR_SIDE_FRICTION, driven=True),
                WheelSpec((body_width / 2, -body_height / 2), REAR_SIDE_FRICTION, driven=True),
            ],
        )
        self.avg_speed = 0.0
        self.steer_value = 0.0

    @property
    def body_id(self):
        return self.vehicle.body_id

    @property
    def position(self):
        return tuple(self.vehicle.position)

    @property
    def angle(self):
        return self.vehicle.angle

    @property
    def num_sensors(self):
        return len(self.sensors)

    def place(self, position, angle):
        self.vehicle.place(position, angle)
        self.avg_speed = 0.0
        self.steer_value = 0.0

    def get_speed(self):
        return self.vehicle.speed

    def get_normalized_sensor_values(self):
        return [sensor.value for sensor in self.sensors]

    def compute_sensor_intersections(self, world, mask):
        position, angle = self.position, self.angle
        for sensor in self.sensors:
            sensor.start = _to_world(sensor.local_from, position, angle)
            sensor.end = _to_world(sensor.local_to, position, angle)
            hit = world.raycast_closest(sensor.start, sensor.end, mask)
            sensor.has_hit = hit is not None
            if hit is not None:
                sensor.hit_distance = hit.distance
                sensor.hit_point = tuple(hit.point)
                sensor.hit_normal = tuple(hit.normal)
            else:
                sensor.hit_distance = sensor.hit_point = sensor.hit_normal = None

    def update(self, throttle, brake, steer, steer_gain, engine_force, brake_force):
        # steer 0.5 is straight ahead
        self.steer_value = steer_gain * -(steer * 2 - 1)
        self.vehicle.set_controls(self.steer_value, engine_force * throttle, brake_force * brake)
        self.avg_speed += self.moving_average_alpha * (self.get_speed() - self.avg_speed)
