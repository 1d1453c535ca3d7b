import math
import statistics
from types import SimpleNamespace

import numpy as np
import pytest

from landingplanner.planner import PlannerParams, SafeLandingPlanner, compute_online_mean_variance


def _flat_cloud(grid_size=4, cell_size=1.0, per_cell=25, z_of=lambda i, j, k: 0.0):
    n = int(grid_size / cell_size)
    low = -grid_size / 2
    points = []
    for i in range(n):
        for j in range(n):
            cx = low + (i + 0.5) * cell_size
            cy = low + (j + 0.5) * cell_size
            for k in range(per_cell):
                points.append((cx, cy, z_of(i, j, k)))
    return points


def _planner(smoothing_size=0, **kwargs):
    params = PlannerParams(grid_size=4.0, cell_size=1.0, smoothing_size=smoothing_size, **kwargs)
    return SafeLandingPlanner(params)


def test_online_mean_variance_matches_batch_statistics():
    values = [1.0, 4.0, 2.5, 7.0, -3.0]
    mean, variance = 0.0, 0.0
    for seq, value in enumerate(values, start=1):
        mean, variance = compute_online_mean_variance(mean, variance, value, float(seq))
    assert mean == pytest.approx(statistics.fmean(values))
    assert variance == pytest.approx(statistics.pvariance(values))


def test_online_mean_variance_first_value():
    mean, variance = compute_online_mean_variance(0.0, 0.0, 3.5, 1.0)
    assert mean == pytest.approx(3.5)
    assert variance == pytest.approx(0.0)


def test_online_mean_variance_zero_sequence_gives_nan_variance():
    result = compute_online_mean_variance(0.0, 0.0, 1.0, 0.0)
    assert len(result) == 2
    assert math.isnan(result[1]) is True


def test_inside_grid_is_strict():
    planner = _planner()
    planner.grid.set_filter_limits([0.0, 0.0, 0.0])
    assert planner.is_inside_grid(1.99, -1.99)
    assert not planner.is_inside_grid(2.0, 0.0)
    assert not planner.is_inside_grid(0.0, -2.0)


def test_grid_index_floors_offsets():
    planner = _planner()
    assert planner.grid_index(-1.5, 1.2) == (0, 3)


def test_flat_cloud_is_landable_everywhere():
    planner = _planner()
    planner.cloud = _flat_cloud()
    planner.run()
    assert np.all(planner.grid.counter == 25)
    assert np.all(planner.grid.land == 1)
    assert len(planner.visualization_cloud) == len(planner.cloud)
    assert planner.grid_seq == 1


def test_nan_and_outside_points_are_ignored():
    planner = _planner()
    planner.cloud = [(math.nan, 0.0, 0.0), (10.0, 0.0, 0.0), (0.5, 0.5, 1.0)]
    planner.run()
    assert planner.grid.counter.sum() == 1


def test_rough_cell_is_not_landable():
    planner = _planner()
    planner.cloud = _flat_cloud(z_of=lambda i, j, k: float(k % 2) if (i, j) == (0, 0) else 0.0)
    planner.run()
    assert planner.grid.land[0, 0] == 0
    assert planner.grid.land.sum() == planner.grid.land.size - 1


def test_smoothing_requires_landable_neighbourhood():
    planner = _planner(smoothing_size=1, min_n_land_cells=8)
    planner.cloud = _flat_cloud()
    planner.run()
    assert planner.grid.land[1, 1] == 1
    assert planner.grid.land[0, 0] == 0


def test_second_run_blends_with_previous_grid():
    planner = _planner()
    planner.cloud = _flat_cloud(z_of=lambda i, j, k: 2.0)
    planner.run()
    planner.run()
    assert np.allclose(planner.grid.mean, 2.0)
    assert planner.grid_seq == 2


def test_raw_grid_is_loaded():
    planner = _planner()
    planner.play_rosbag = True
    mean = np.array([[1.0, 2.0], [3.0, 4.0]])
    std_dev = np.array([[0.1, 0.2], [0.3, 0.4]])
    counter = np.array([[5, 6], [7, 8]])
    planner.raw_grid = SimpleNamespace(
        seq=42, grid_size=2.0, cell_size=1.0, mean=mean, std_dev=std_dev, counter=counter
    )
    planner.run()
    assert planner.grid_seq == 42
    assert np.allclose(planner.grid.mean, mean)
    assert np.allclose(planner.grid.variance, std_dev**2)
    assert np.array_equal(planner.grid.counter, counter)
    assert not planner.grid.land.any()


def test_set_params_flags_size_update():
    planner = _planner()
    planner.set_params(PlannerParams(grid_size=4.0, cell_size=1.0, smoothing_size=0))
    assert planner.size_update is False
    planner.set_params(PlannerParams(grid_size=4.0, cell_size=0.5, smoothing_size=1))
    assert planner.size_update is True
    planner.cloud = []
    planner.run()
    assert planner.grid.cell_size == 0.5
    assert planner.n_lines_padding == 1
    assert planner.size_update is False


def test_set_pose_updates_position_index():
    planner = _planner()
    planner.set_pose([0.7, -0.3, 5.0], None)
    planner.cloud = []
    planner.run()
    assert planner.pos_index == planner.grid_index(0.7, -0.3)
    assert planner.is_inside_grid(0.7, -0.3)