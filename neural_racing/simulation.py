"""
A single episode: one network driving one car until it crashes or stalls.
"""

import dataclasses
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

from .car import Car
from .config import NUM_OUTPUTS, EpisodeOptions, SensorOptions
from .errors import ConfigurationError, EpisodeStateError
from .fitness import fitness
from .physics import CHECKPOINT_GROUP, WALL_GROUP

logger = logging.getLogger(__name__)


class EpisodeState(Enum):
    UNBOUND = "unbound"
    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


@dataclass(frozen=True)
class DataPoint:
    position: tuple
    speed: float
    fitness: float


class TickResult(NamedTuple):
    fitness: float
    avg_speed: float


@dataclass(frozen=True)
class Frame:
    """Everything the renderer needs to draw one tick. Read-only."""

    track: object
    car_position: tuple
    car_angle: float
    car_size: tuple
    steer_value: float
    avg_speed: float
    stalled: bool
    sensors: tuple
    inputs: tuple
    hidden: tuple
    outputs: tuple
    network: object
    datapoints: tuple
    min_speed: float
    max_speed: float
    checkpoint_index: int
    laps: int
    fitness: float


@dataclass
class SimulationData:
    datapoints: list = field(default_factory=list)
    min_speed: float = 0.0
    max_speed: float = 1.0
    best_fitness: float = 0.0


class EpisodeRunner:
    def __init__(self, network, track, sensor_options=None, options=None):
        self.sensor_options = sensor_options or SensorOptions()
        self.options = options or EpisodeOptions()

        if network.num_inputs != self.sensor_options.num_sensors:
            raise ConfigurationError(
                "Given network has an invalid number of inputs - must match number of sensors "
                f"of car ({self.sensor_options.num_sensors}) but got {network.num_inputs}"
            )
        if network.num_outputs != NUM_OUTPUTS:
            raise ConfigurationError(
                f"Given network has an invalid number of outputs - must be {NUM_OUTPUTS} "
                f"but got {network.num_outputs}"
            )

        self.network = network
        self.track = track
        self.car = None

        self.checkpoint = 0
        self.laps = 0
        self.simulation_data = SimulationData()
        self.stopped_ticks = self.options.ticks_to_wait_for_stop

        self._state = EpisodeState.UNBOUND
        self._world = None
        self._subscription = None
        self._on_finish = None
        self._last_result = TickResult(0.0, 0.0)
        self._activations = ((), (), ())

    @property
    def state(self):
        return self._state

    @property
    def best_fitness(self):
        return self.simulation_data.best_fitness

    @property
    def checkpoint_index(self):
        return self.checkpoint

    @property
    def min_speed(self):
        return self.simulation_data.min_speed

    @property
    def max_speed(self):
        return self.simulation_data.max_speed

    @property
    def datapoints(self):
        return list(self.simulation_data.datapoints)

    @property
    def trail(self):
        return [datapoint.position for datapoint in self.simulation_data.datapoints]

    def bind(self, world, on_finish):
        """Rebuild the world around this episode and listen for its contacts."""
        self.unbind()
        world.clear()
        self.track.add_to_world(world)
        self.car = Car(
            world,
            self.options.car_width,
            self.options.car_height,
            self.sensor_options,
            mass=self.options.car_mass,
            moving_average_alpha=self.options.moving_average_alpha,
        )
        self.car.place(self.track.initial_position, self.track.initial_angle - math.pi / 2)
        self._world = world
        self._on_finish = on_finish
        self._subscription = world.subscribe(self._handle_contact)
        self._state = EpisodeState.IDLE

    def unbind(self):
        self._release_subscription()
        self._world = None
        self._state = EpisodeState.UNBOUND

    def start(self):
        if self._state is EpisodeState.UNBOUND:
            raise EpisodeStateError("Cannot start an episode that is not bound to a world")
        if self._subscription is None or not self._subscription.active:
            self._subscription = self._world.subscribe(self._handle_contact)

        self.checkpoint = 0
        self.laps = 0
        self.simulation_data = SimulationData()
        self.stopped_ticks = self.options.ticks_to_wait_for_stop

        self.car.place(self.track.initial_position, self.track.initial_angle - math.pi / 2)
        self.simulation_data.datapoints.append(
            DataPoint(self.car.position, self.car.avg_speed, self.fitness())
        )
        self._last_result = TickResult(0.0, 0.0)
        self._state = EpisodeState.RUNNING

    def fitness(self):
        return fitness(self.laps, self.checkpoint, self.car.position, self.track)

    def tick(self):
        """Advance the episode by exactly one physics step."""
        if self._state is EpisodeState.FINISHED:
            return self._last_result
        if self._state is not EpisodeState.RUNNING:
            raise EpisodeStateError(f"Cannot tick an episode in state {self._state.value}")

        self._world.step(self.options.timestep)
        if self._state is not EpisodeState.RUNNING:
            # crashed into a wall during the step
            return self._last_result

        self.car.compute_sensor_intersections(self._world, WALL_GROUP)
        inputs = self.car.get_normalized_sensor_values()
        hidden, outputs = self.network.evaluate(inputs)
        throttle, brake, steer = (float(v) for v in outputs)
        self._activations = (tuple(inputs), tuple(hidden.tolist()), (throttle, brake, steer))

        self.car.update(
            throttle, brake, steer,
            self.options.steer_gain, self.options.engine_force, self.options.brake_force,
        )

        avg_speed = self.car.avg_speed
        current_fitness = self.fitness()
        data = self.simulation_data
        data.datapoints.append(DataPoint(self.car.position, avg_speed, current_fitness))
        data.max_speed = max(data.max_speed, avg_speed)
        data.min_speed = min(data.min_speed, avg_speed)
        data.best_fitness = max(data.best_fitness, current_fitness)
        self._last_result = TickResult(current_fitness, avg_speed)

        if abs(avg_speed) < self.options.minimum_average_speed:
            self.stopped_ticks -= 1
            if self.stopped_ticks <= 0:
                logger.debug("Episode stalled at fitness %.2f", current_fitness)
                self.finish()
        else:
            self.stopped_ticks = self.options.ticks_to_wait_for_stop

        return self._last_result

    def finish(self):
        if self._state is EpisodeState.FINISHED:
            return
        self._state = EpisodeState.FINISHED
        self._release_subscription()
        if self._on_finish is not None:
            self._on_finish(self.simulation_data.best_fitness)

    def kill(self):
        """End the episode now, scoring it with its current progress."""
        if self._state is EpisodeState.UNBOUND:
            raise EpisodeStateError("Cannot kill an episode that is not bound to a world")
        if self._state is EpisodeState.RUNNING:
            data = self.simulation_data
            data.best_fitness = max(data.best_fitness, self.fitness())
        self.finish()

    def snapshot(self):
        if self.car is None:
            raise EpisodeStateError("Episode has no car to draw before it is bound")
        inputs, hidden, outputs = self._activations
        data = self.simulation_data
        return Frame(
            track=self.track,
            car_position=self.car.position,
            car_angle=self.car.angle,
            car_size=(self.car.width, self.car.height),
            steer_value=self.car.steer_value,
            avg_speed=self.car.avg_speed,
            stalled=abs(self.car.avg_speed) <= self.options.minimum_average_speed,
            sensors=tuple(dataclasses.replace(sensor) for sensor in self.car.sensors),
            inputs=inputs,
            hidden=hidden,
            outputs=outputs,
            network=self.network,
            datapoints=tuple(data.datapoints),
            min_speed=data.min_speed,
            max_speed=data.max_speed,
            checkpoint_index=self.checkpoint,
            laps=self.laps,
            fitness=self._last_result.fitness,
        )

    def _release_subscription(self):
        if self._subscription is not None:
            self._subscription.release()
            self._subscription = None

    def _handle_contact(self, event):
        if self._state is not EpisodeState.RUNNING:
            return
        if event.group_a == CHECKPOINT_GROUP:
            self._hit_checkpoint(self.track.checkpoint_for_body(event.body_a))
        elif event.group_b == CHECKPOINT_GROUP:
            self._hit_checkpoint(self.track.checkpoint_for_body(event.body_b))
        else:
            logger.debug("Car hit a wall at fitness %.2f", self.fitness())
            self.finish()

    def _hit_checkpoint(self, checkpoint):
        if checkpoint is None or checkpoint.index != self.checkpoint:
            return
        if checkpoint.last_checkpoint:
            self.laps += 1
            self.checkpoint = 0
        else:
            self.checkpoint += 1