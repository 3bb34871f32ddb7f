"""
Simulation, vehicle and genetic-algorithm settings.

Module-level constants are the defaults; the option dataclasses group them
per component and are what the simulator actually consumes.
"""

import math
from dataclasses import dataclass

from .errors import ConfigurationError

# ---------------- CONFIG ----------------
WIDTH, HEIGHT = 1000, 600
TARGET_FPS = 60
TIMESTEP = 1 / 60

DEFAULT_TRACK_WIDTH = 80
WALL_THICKNESS = 5
CHECKPOINT_THICKNESS = 0.5

CAR_WIDTH = 20
CAR_HEIGHT = 40
CAR_MASS = 1.0
FRONT_SIDE_FRICTION = 400
REAR_SIDE_FRICTION = 300
FRONT_BRAKE_FORCE = 20

NUM_SENSORS = 3
SENSOR_LENGTH = 120
SENSOR_ANGLE = math.radians(90)

STEER_GAIN = 0.63
ENGINE_FORCE = 150
BRAKE_FORCE = 150

MOVING_AVERAGE_ALPHA = 0.1
MINIMUM_AVERAGE_SPEED = 5.0
TICKS_TO_WAIT_FOR_STOP = 120

NUM_HIDDEN_NODES = 10
NUM_OUTPUTS = 3  # throttle, brake, steer

GENERATION_SIZE = 20
NUM_BEST_PERFORMERS_TO_KEEP = 1
NUM_BREEDERS = 3  # max(2, 15% of the generation)
NUM_RANDOM = 1
MUTATION_CHANCE = 0.1
MUTATION_AMOUNT = 0.1
# ---------------------------------------


@dataclass(frozen=True)
class SensorOptions:
    """Fan of distance sensors mounted on the front of the car."""

    num_sensors: int = NUM_SENSORS
    sensor_length: float = SENSOR_LENGTH
    sensor_angle: float = SENSOR_ANGLE

    def __post_init__(self):
        if self.num_sensors < 1 or self.num_sensors % 2 == 0:
            raise ConfigurationError(
                f"Sensor count must be a positive odd number, got {self.num_sensors}"
            )
        if self.sensor_length <= 0:
            raise ConfigurationError(f"Sensor length must be positive, got {self.sensor_length}")


@dataclass(frozen=True)
class EpisodeOptions:
    timestep: float = TIMESTEP
    car_width: float = CAR_WIDTH
    car_height: float = CAR_HEIGHT
    car_mass: float = CAR_MASS
    steer_gain: float = STEER_GAIN
    engine_force: float = ENGINE_FORCE
    brake_force: float = BRAKE_FORCE
    moving_average_alpha: float = MOVING_AVERAGE_ALPHA
    minimum_average_speed: float = MINIMUM_AVERAGE_SPEED
    ticks_to_wait_for_stop: int = TICKS_TO_WAIT_FOR_STOP

    def __post_init__(self):
        if self.timestep <= 0:
            raise ConfigurationError(f"Timestep must be positive, got {self.timestep}")
        if self.ticks_to_wait_for_stop < 1:
            raise ConfigurationError("Stall countdown needs at least one tick")
        if not 0 < self.moving_average_alpha <= 1:
            raise ConfigurationError(
                f"Moving average alpha must be in (0, 1], got {self.moving_average_alpha}"
            )


@dataclass(frozen=True)
class GeneticOptions:
    """Population size, selection pressure and mutation settings."""

    generation_size: int = GENERATION_SIZE
    num_best_performers_to_keep: int = NUM_BEST_PERFORMERS_TO_KEEP
    num_breeders: int = NUM_BREEDERS
    num_random: int = NUM_RANDOM
    num_hidden_nodes: int = NUM_HIDDEN_NODES
    mutation_chance: float = MUTATION_CHANCE
    mutation_amount: float = MUTATION_AMOUNT

    def __post_init__(self):
        if self.generation_size < 1:
            raise ConfigurationError(f"Generation size must be positive, got {self.generation_size}")
        if min(self.num_best_performers_to_keep, self.num_breeders, self.num_random) < 0:
            raise ConfigurationError("Elite, breeder and random counts cannot be negative")
        if self.num_best_performers_to_keep + self.num_random > self.generation_size:
            raise ConfigurationError(
                "Elites and random immigrants do not fit in a generation of "
                f"{self.generation_size}"
            )
        if self.num_breeders > self.generation_size:
            raise ConfigurationError("Breeding pool cannot be larger than the generation")
        if self.num_hidden_nodes < 1:
            raise ConfigurationError("Network needs at least one hidden node")
        if not 0 <= self.mutation_chance <= 1:
            raise ConfigurationError(f"Mutation chance must be in [0, 1], got {self.mutation_chance}")
