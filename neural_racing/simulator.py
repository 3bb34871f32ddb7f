"""
Genetic scheduler: runs one episode per genome and breeds the next generation.
"""

import dataclasses
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .config import NUM_OUTPUTS, EpisodeOptions, GeneticOptions, SensorOptions
from .network import Network, NetworkStructure
from .simulation import EpisodeRunner

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    RESET = "reset"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True)
class Individual:
    fitness: float
    network: Network


class StatusSink(Protocol):
    def update_genetic(self, generation: int, genome: int, best_fitness: float) -> None: ...

    def update_individual(self, fitness: float, avg_speed: float) -> None: ...


class Renderer(Protocol):
    def draw(self, frame, trails) -> None: ...


class Simulator:
    """
    Owns the population and the single active episode.

    Genomes 0..generation_size-1 of a generation are evaluated one after the
    other in the shared physics world. When a generation is complete the
    best networks become elites (carried over unchanged) and the top
    breeders form the pool for crossover; the last num_random slots of
    every generation are filled with fresh random networks.
    """

    def __init__(self, track, world, genetic_options=None, sensor_options=None,
                 episode_options=None, status=None, renderer=None, rng=None):
        self.track = track
        self.world = world
        self.genetic_options = genetic_options or GeneticOptions()
        self.sensor_options = sensor_options or SensorOptions()
        self.episode_options = episode_options or EpisodeOptions()
        self.status = status
        self.renderer = renderer
        self._rng = rng or random.Random()

        self._state = SchedulerState.RESET
        self._active = None
        self.reset()

    @property
    def state(self):
        return self._state

    @property
    def running(self):
        return self._state is SchedulerState.RUNNING

    @property
    def generation(self):
        return self._generation

    @property
    def genome(self):
        return self._genome

    @property
    def best_fitness(self):
        return self._best_fitness

    @property
    def trails(self):
        return list(self._trails)

    @property
    def population(self):
        """Individuals scored so far in the current generation, by genome slot."""
        return list(self._population)

    @property
    def last_generation(self):
        """The previous generation, best first."""
        return list(self._last_generation)

    @property
    def active_simulation(self):
        return self._active

    @property
    def structure(self):
        return NetworkStructure(
            self.sensor_options.num_sensors, self.genetic_options.num_hidden_nodes, NUM_OUTPUTS
        )

    def set_structure(self, num_sensors=None, num_hidden_nodes=None):
        """Change the topology of networks created from the next genome on."""
        if num_sensors is not None:
            self.sensor_options = dataclasses.replace(self.sensor_options, num_sensors=num_sensors)
        if num_hidden_nodes is not None:
            self.genetic_options = dataclasses.replace(
                self.genetic_options, num_hidden_nodes=num_hidden_nodes
            )
        logger.info("Network structure for upcoming genomes: %s", tuple(self.structure))

    def reset(self):
        if self._active is not None:
            self._active.unbind()

        self._generation = 0
        self._genome = 0
        self._best_fitness = 0.0
        self._trails = []
        self._population = []
        self._last_generation = []
        self._elites = []
        self._breeders = []

        self._active = self._create_simulation()
        self._state = SchedulerState.RESET
        self._update_genetic_status()
        if self.status is not None:
            self.status.update_individual(0.0, 0.0)

    def start(self):
        if self._state is SchedulerState.RUNNING:
            return
        if self._state is SchedulerState.RESET:
            self._active.start()
            self._update_genetic_status()
        self._state = SchedulerState.RUNNING

    def stop(self):
        if self._state is SchedulerState.RUNNING:
            self._state = SchedulerState.PAUSED

    def kill_current_simulation(self):
        if self._state is SchedulerState.RESET:
            return
        self._active.kill()

    def tick(self):
        """Frame callback: advance the active episode by one physics step."""
        if self._state is not SchedulerState.RUNNING:
            return None

        result = self._active.tick()
        if result.fitness > self._best_fitness:
            self._best_fitness = result.fitness
            self._update_genetic_status()
        if self.status is not None:
            self.status.update_individual(result.fitness, result.avg_speed)
        if self.renderer is not None:
            self.renderer.draw(self._active.snapshot(), self.trails)
        return result

    def _create_simulation(self):
        simulation = EpisodeRunner(
            self._next_network(), self.track, self.sensor_options, self.episode_options
        )
        simulation.bind(self.world, self._handle_simulation_complete)
        return simulation

    def _next_network(self):
        structure = self.structure
        options = self.genetic_options
        if self._elites:
            return Network.reshape(structure, self._elites.pop(0))
        if len(self._breeders) >= 2 and self._genome < options.generation_size - options.num_random:
            parents = self._rng.sample(self._breeders, 2)
            return Network.from_parents(
                structure, parents,
                mutation_chance=options.mutation_chance,
                mutation_amount=options.mutation_amount,
            )
        return Network(structure)

    def _handle_simulation_complete(self, fitness):
        finished = self._active
        self._trails.append(finished.trail)
        self._population.append(Individual(fitness, finished.network))
        self._best_fitness = max(self._best_fitness, fitness)
        logger.debug("Generation %d genome %d finished with fitness %.2f",
                     self._generation, self._genome, fitness)
        finished.unbind()

        self._genome += 1
        if self._genome >= self.genetic_options.generation_size:
            self._breed_next_generation()

        self._active = self._create_simulation()
        self._active.start()
        self._update_genetic_status()

    def _breed_next_generation(self):
        ranked = sorted(self._population, key=lambda individual: individual.fitness, reverse=True)
        options = self.genetic_options

        self._elites = [individual.network for individual in ranked[:options.num_best_performers_to_keep]]
        self._breeders = [individual.network for individual in ranked[:options.num_breeders]]
        self._last_generation = ranked

        mean = sum(individual.fitness for individual in ranked) / len(ranked)
        logger.info("Gen %d | Best: %.2f | Mean: %.2f | Best ever: %.2f",
                    self._generation, ranked[0].fitness, mean, self._best_fitness)

        self._population = []
        self._trails = []
        self._genome = 0
        self._generation += 1

    def _update_genetic_status(self):
        if self.status is not None:
            self.status.update_genetic(self._generation, self._genome, self._best_fitness)
