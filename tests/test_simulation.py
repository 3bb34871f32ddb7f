import math

import pytest

from neural_racing.config import EpisodeOptions, SensorOptions
from neural_racing.errors import ConfigurationError, EpisodeStateError
from neural_racing.network import Network, NetworkStructure
from neural_racing.simulation import EpisodeRunner, EpisodeState


def make_runner(track, world, stall_ticks=120, finished=None):
    runner = EpisodeRunner(
        Network(NetworkStructure(3, 10, 3)), track,
        options=EpisodeOptions(ticks_to_wait_for_stop=stall_ticks),
    )
    runner.bind(world, finished.append if finished is not None else (lambda fitness: None))
    return runner


def test_network_must_match_sensors(square_track):
    with pytest.raises(ConfigurationError):
        EpisodeRunner(Network((5, 10, 3)), square_track)
    with pytest.raises(ConfigurationError):
        EpisodeRunner(Network((3, 10, 2)), square_track)


def test_unbound_runner_cannot_start(square_track):
    runner = EpisodeRunner(Network((3, 10, 3)), square_track)
    assert runner.state is EpisodeState.UNBOUND
    with pytest.raises(EpisodeStateError):
        runner.start()
    with pytest.raises(EpisodeStateError):
        runner.kill()
    with pytest.raises(EpisodeStateError):
        runner.snapshot()


def test_tick_before_start_raises(square_track, world):
    runner = make_runner(square_track, world)
    assert runner.state is EpisodeState.IDLE
    with pytest.raises(EpisodeStateError):
        runner.tick()


def test_bind_builds_the_world(square_track, world):
    make_runner(square_track, world)
    assert len(world.boxes) == 12
    assert len(world.vehicles) == 1
    assert len(world.handlers) == 1


def test_start_places_car(square_track, world):
    runner = make_runner(square_track, world)
    runner.start()
    assert runner.state is EpisodeState.RUNNING
    assert world.vehicle.position == (0, 0)
    assert world.vehicle.angle == pytest.approx(-math.pi / 2)
    assert len(runner.datapoints) == 1
    assert runner.datapoints[0].fitness == pytest.approx(0)


def test_sensors_read_the_corridor(square_track, world):
    runner = make_runner(square_track, world)
    runner.start()
    world.vehicle.speed = 100.0
    runner.tick()
    left, middle, right = runner.car.sensors
    assert not middle.has_hit
    assert middle.value == 1.0
    expected = 33.5 * math.sqrt(2) / 120
    assert left.value == pytest.approx(expected)
    assert right.value == pytest.approx(expected)


def test_tick_records_progress(square_track, world):
    runner = make_runner(square_track, world)
    runner.start()
    world.vehicle.speed = 100.0
    for x in (50, 100, 150):
        world.vehicle.position = (x, 0)
        result = runner.tick()
    assert result.fitness == pytest.approx(150)
    assert runner.best_fitness == pytest.approx(150)
    assert len(runner.datapoints) == 4
    assert runner.trail[-1] == (150, 0)


def test_wall_contact_finishes_once(square_track, world):
    finished = []
    runner = make_runner(square_track, world, finished=finished)
    runner.start()
    world.vehicle.position = (120, 0)
    world.vehicle.speed = 100.0
    runner.tick()
    world.hit_wall()
    runner.tick()
    assert runner.state is EpisodeState.FINISHED
    assert finished == [pytest.approx(120)]
    assert world.handlers == {}

    # further ticks are harmless and report the last result
    assert runner.tick().fitness == pytest.approx(120)
    runner.finish()
    assert len(finished) == 1


def test_checkpoints_must_be_hit_in_order(square_track, world):
    runner = make_runner(square_track, world)
    runner.start()
    world.vehicle.speed = 100.0
    world.hit_checkpoint(1)
    runner.tick()
    assert runner.checkpoint == 0

    world.hit_checkpoint(0)
    runner.tick()
    assert runner.checkpoint == 1

    world.hit_checkpoint(0)
    runner.tick()
    assert runner.checkpoint == 1


def test_last_checkpoint_completes_a_lap(square_track, world):
    runner = make_runner(square_track, world)
    runner.start()
    world.vehicle.speed = 100.0
    for index in range(4):
        world.hit_checkpoint(index)
        runner.tick()
    assert runner.laps == 1
    assert runner.checkpoint == 0
    world.vehicle.position = (200, 0)
    assert runner.fitness() == pytest.approx(1800)


def test_stall_finishes_on_the_countdown_tick(square_track, world):
    finished = []
    runner = make_runner(square_track, world, stall_ticks=5, finished=finished)
    runner.start()
    for _ in range(4):
        runner.tick()
    assert runner.state is EpisodeState.RUNNING
    runner.tick()
    assert runner.state is EpisodeState.FINISHED
    assert len(finished) == 1


def test_moving_resets_the_stall_countdown(square_track, world):
    runner = make_runner(square_track, world, stall_ticks=3)
    runner.start()
    runner.tick()
    runner.tick()
    world.vehicle.speed = 1000.0
    runner.tick()
    assert runner.stopped_ticks == 3
    for _ in range(10):
        runner.tick()
    assert runner.state is EpisodeState.RUNNING


def test_kill_scores_current_progress(square_track, world):
    finished = []
    runner = make_runner(square_track, world, finished=finished)
    runner.start()
    world.vehicle.position = (250, 0)
    runner.kill()
    assert runner.state is EpisodeState.FINISHED
    assert finished == [pytest.approx(250)]


def test_kill_before_start_finishes_with_zero(square_track, world):
    finished = []
    runner = make_runner(square_track, world, finished=finished)
    runner.kill()
    assert finished == [0.0]


def test_restart_resets_progress(square_track, world):
    runner = make_runner(square_track, world)
    runner.start()
    world.hit_checkpoint(0)
    world.vehicle.speed = 100.0
    runner.tick()
    runner.kill()

    runner.start()
    assert runner.state is EpisodeState.RUNNING
    assert runner.checkpoint == 0
    assert len(runner.datapoints) == 1
    assert len(world.handlers) == 1


def test_unbind_releases_subscription(square_track, world):
    runner = make_runner(square_track, world)
    runner.unbind()
    assert runner.state is EpisodeState.UNBOUND
    assert world.handlers == {}


def test_snapshot(square_track, world):
    runner = make_runner(square_track, world)
    runner.start()
    world.vehicle.speed = 100.0
    runner.tick()
    frame = runner.snapshot()
    assert frame.track is square_track
    assert frame.car_size == (20, 40)
    assert len(frame.sensors) == 3
    assert len(frame.inputs) == 3
    assert len(frame.hidden) == 10
    assert len(frame.outputs) == 3
    assert frame.sensors[0] is not runner.car.sensors[0]


def test_custom_sensor_count(square_track, world):
    runner = EpisodeRunner(Network((5, 4, 3)), square_track, SensorOptions(num_sensors=5))
    runner.bind(world, lambda fitness: None)
    runner.start()
    runner.tick()
    assert len(runner.snapshot().inputs) == 5
