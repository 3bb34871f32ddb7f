import random

import pytest

from neural_racing.app import build_options, load_track, parse_args, run_headless
from neural_racing.config import EpisodeOptions, GeneticOptions
from neural_racing.errors import ConfigurationError
from neural_racing.simulator import Simulator


def test_defaults():
    args = parse_args([])
    sensor_options, episode_options, genetic_options = build_options(args)
    assert sensor_options.num_sensors == 3
    assert genetic_options == GeneticOptions()
    assert episode_options == EpisodeOptions()
    assert not args.headless


def test_overrides():
    args = parse_args([
        "--generation-size", "10", "--hidden-nodes", "6", "--sensors", "5",
        "--breeders", "4", "--elites", "2", "--random", "0", "--mutation-chance", "0.2",
    ])
    sensor_options, _, genetic_options = build_options(args)
    assert sensor_options.num_sensors == 5
    assert genetic_options.generation_size == 10
    assert genetic_options.num_hidden_nodes == 6
    assert genetic_options.num_best_performers_to_keep == 2
    assert genetic_options.num_random == 0
    assert genetic_options.mutation_chance == 0.2


def test_even_sensor_count_rejected():
    with pytest.raises(ConfigurationError):
        build_options(parse_args(["--sensors", "4"]))


def test_too_many_elites_rejected():
    with pytest.raises(ConfigurationError):
        build_options(parse_args(["--generation-size", "2", "--elites", "2", "--random", "1"]))


def test_bad_ticks_per_frame():
    with pytest.raises(SystemExit):
        parse_args(["--ticks-per-frame", "0"])


def test_load_track_from_csv(tmp_path):
    path = tmp_path / "triangle.csv"
    path.write_text("0,0\n300,0\n150,250\n")
    assert len(load_track(str(path))) == 3
    assert len(load_track()) == 18


def test_run_headless(square_track, world):
    simulator = Simulator(
        square_track, world,
        genetic_options=GeneticOptions(generation_size=3, num_breeders=2),
        episode_options=EpisodeOptions(ticks_to_wait_for_stop=2),
        rng=random.Random(1),
    )
    run_headless(simulator, 2)
    assert simulator.generation == 2
