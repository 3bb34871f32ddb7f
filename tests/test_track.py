import math

import pytest

from neural_racing.errors import ConfigurationError
from neural_racing.physics import CHECKPOINT_GROUP, WALL_GROUP
from neural_racing.track import DEFAULT_TRACK_POINTS, Track, TrackPoint, default_track, load_track_csv


def test_needs_three_points():
    with pytest.raises(ConfigurationError):
        Track([(0, 0), (100, 0)])


def test_coinciding_points_rejected():
    with pytest.raises(ConfigurationError):
        Track([(0, 0), (100, 0), (100, 0), (0, 100)])


def test_track_doubling_back_rejected():
    with pytest.raises(ConfigurationError):
        Track([(0, 0), (100, 0), (50, 0)])


def test_square_lengths(square_track):
    assert square_track.total_track_length == pytest.approx(1600)
    assert [c.cumulative_distance for c in square_track.checkpoints] == pytest.approx([400, 800, 1200, 1600])
    assert all(c.track_segment_length == pytest.approx(400) for c in square_track.checkpoints)


def test_square_walls_and_checkpoints(square_track):
    assert len(square_track) == 4
    assert len(square_track.walls) == 8
    assert [c.index for c in square_track.checkpoints] == [0, 1, 2, 3]
    assert [c.last_checkpoint for c in square_track.checkpoints] == [False, False, False, True]
    # checkpoint i sits across the centerline at point i + 1
    for i, checkpoint in enumerate(square_track.checkpoints):
        expected = square_track.points[(i + 1) % 4].position
        assert checkpoint.position == pytest.approx(expected)


def test_corridor_width_is_constant_through_corners(square_track):
    inner, outer = square_track.left_points[0], square_track.right_points[0]
    # width 80 plus one wall thickness, measured perpendicular to the bottom edge
    assert abs(inner[1] - outer[1]) == pytest.approx(85)
    assert math.dist(inner, outer) == pytest.approx(85 * math.sqrt(2))


def test_initial_pose(square_track):
    assert square_track.initial_position == (0, 0)
    assert square_track.initial_angle == pytest.approx(0)


def test_add_to_world_registers_checkpoints(square_track, world):
    square_track.add_to_world(world)
    walls = world.ids_in_group(WALL_GROUP)
    checkpoints = world.ids_in_group(CHECKPOINT_GROUP)
    assert len(walls) == 8
    assert len(checkpoints) == 4
    assert all(world.boxes[body]["sensor"] for body in checkpoints)
    assert [square_track.checkpoint_for_body(body).index for body in checkpoints] == [0, 1, 2, 3]
    assert square_track.checkpoint_for_body(walls[0]) is None


def test_per_point_width():
    track = Track([TrackPoint((0, 0), 20), (400, 0), (400, 400), (0, 400)])
    assert abs(track.left_points[0][1] - track.right_points[0][1]) == pytest.approx(25)
    assert abs(track.left_points[1][1] - track.right_points[1][1]) == pytest.approx(85)


def test_load_csv(tmp_path):
    path = tmp_path / "square.csv"
    path.write_text("# x,y,width\n0,0\n400,0,60\n\n400,400\n0,400\n")
    track = load_track_csv(str(path))
    assert len(track) == 4
    assert track.points[1].width == 60
    assert track.points[0].width is None


def test_load_csv_reports_bad_line(tmp_path):
    path = tmp_path / "broken.csv"
    path.write_text("0,0\n400,zero\n400,400\n")
    with pytest.raises(ConfigurationError, match=":2:"):
        load_track_csv(str(path))


def test_default_track():
    track = default_track()
    assert len(track) == 18
    assert [p.position for p in track.points] == DEFAULT_TRACK_POINTS
    assert track.total_track_length > 0
