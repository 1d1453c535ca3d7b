"""Safe landing planner: bins a point cloud into a height grid and marks landable cells."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from landingplanner.grid import Grid


def _divide(numerator: float, denominator: float) -> float:
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(numerator) / np.float64(denominator))


def compute_online_mean_variance(
    prev_mean: float, prev_variance: float, new_value: float, seq: float
) -> tuple[float, float]:
    """Update a running mean and population variance with ``new_value`` as sample ``seq``."""
    mean = _divide(prev_mean * (seq - 1) + new_value, seq)
    delta = new_value - prev_mean
    delta2 = new_value - mean
    prev_m2 = prev_variance * (seq - 1) if (seq - 1) >= 0 else 0.0
    m2 = prev_m2 + delta * delta2
    variance = m2 / seq if seq > 0 else math.nan
    return mean, variance


@dataclass
class PlannerParams:
    """Tunable parameters of the safe landing planner."""

    n_points_thr: float = 20.0
    std_dev_thr: float = 0.1
    smoothing_size: int = 2
    mean_diff_thr: float = 0.15
    max_n_mean_diff_cells: int = 5
    grid_size: float = 10.0
    cell_size: float = 1.0
    alpha: float = 0.5
    timeout_critical: float = 0.5
    timeout_termination: float = 15.0
    min_n_land_cells: int = 12


class SafeLandingPlanner:
    """Keeps a height grid around the vehicle and decides where landing is possible."""

    def __init__(self, params: PlannerParams | None = None, play_rosbag: bool = False):
        self.params = params or PlannerParams()
        self.play_rosbag = play_rosbag
        self.grid = Grid(self.params.grid_size, self.params.cell_size)
        self.previous_grid = Grid(self.params.grid_size, self.params.cell_size)
        self.n_lines_padding = self.params.smoothing_size
        self.size_update = False
        self.position = np.zeros(3)
        self.cloud: list = []
        self.raw_grid = None
        self.visualization_cloud: list[tuple[float, float, float, float]] = []
        self.grid_seq = 0
        self.pos_index = (0, 0)

    def run(self) -> None:
        """Update the grid from the latest input and recompute the landing decision."""
        if self.size_update:
            self.grid.resize(self.params.grid_size, self.params.cell_size)
            self.previous_grid.resize(self.params.grid_size, self.params.cell_size)
            self.n_lines_padding = self.params.smoothing_size
            self.size_update = False
        if self.play_rosbag:
            self.process_raw_grid()
        else:
            self.process_pointcloud()
        self.grid.combine(self.previous_grid, self.params.alpha)
        self.evaluate_landing()

    def process_pointcloud(self) -> None:
        """Bin the points of ``cloud`` into the grid, updating mean and variance per cell."""
        self.grid, self.previous_grid = self.previous_grid, self.grid
        self.grid.set_filter_limits(self.position)
        self.grid_seq += 1
        self.grid.reset()
        self.visualization_cloud = []
        cells_per_side = self.params.grid_size / self.params.cell_size
        for point in self.cloud:
            x, y, z = (float(c) for c in point[:3])
            if math.isnan(x) or math.isnan(y) or math.isnan(z):
                continue
            if not self.is_inside_grid(x, y):
                continue
            i, j = self.grid_index(x, y)
            self.grid.counter[i, j] += 1
            mean, variance = compute_online_mean_variance(
                self.grid.mean[i, j], self.grid.variance[i, j], z, float(self.grid.counter[i, j])
            )
            self.grid.mean[i, j] = mean
            self.grid.variance[i, j] = variance
            self.visualization_cloud.append((x, y, z, i * cells_per_side + j))

    def process_raw_grid(self) -> None:
        """Load the grid from a recorded grid message held in ``raw_grid``."""
        message = self.raw_grid
        self.grid_seq = message.seq
        self.grid, self.previous_grid = self.previous_grid, self.grid
        self.grid.reset()
        self.grid.set_filter_limits(self.position)
        if self.grid.grid_size != message.grid_size or self.grid.cell_size != message.cell_size:
            self.grid.resize(message.grid_size, message.cell_size)
        mean = np.asarray(message.mean, dtype=float)
        std_dev = np.asarray(message.std_dev, dtype=float)
        counter = np.asarray(message.counter, dtype=int)
        rows, cols = mean.shape
        self.grid.mean[:rows, :cols] = mean
        self.grid.variance[:rows, :cols] = std_dev**2
        self.grid.counter[:rows, :cols] = counter

    def evaluate_landing(self) -> None:
        """Mark each cell as landable from its statistics and its neighbourhood."""
        params = self.params
        grid = self.grid
        with np.errstate(invalid="ignore"):
            unsafe = (grid.counter < params.n_points_thr) | (np.sqrt(grid.variance) > params.std_dev_thr)
        grid.land = (~unsafe).astype(int)

        padding = self.n_lines_padding
        if padding > 0:
            window = (2 * padding + 1, 2 * padding + 1)
            land_padded = np.pad(grid.land, padding)
            mean_padded = np.pad(grid.mean, padding)
            land_acc = sliding_window_view(land_padded, window).sum(axis=(2, 3))
            with np.errstate(invalid="ignore"):
                diff = np.abs(grid.mean[:, :, None, None] - sliding_window_view(mean_padded, window))
                mean_acc = (diff > params.mean_diff_thr).sum(axis=(2, 3))

            land_acc = np.where(land_acc <= params.min_n_land_cells, 0, land_acc)
            land_acc = np.where(land_acc > params.min_n_land_cells, 1, land_acc)
            mean_acc = np.where(mean_acc <= params.max_n_mean_diff_cells, 1, mean_acc)
            mean_acc = np.where(mean_acc > params.max_n_mean_diff_cells, 0, mean_acc)
            grid.land = (mean_acc * land_acc).astype(int)

        self.pos_index = self.grid_index(self.position[0], self.position[1])

    def set_pose(self, position, orientation=None) -> None:
        """Store the vehicle position; the orientation is not used."""
        self.position = np.asarray(position, dtype=float).reshape(3)

    def is_inside_grid(self, x: float, y: float) -> bool:
        low, high = self.grid.limits()
        return low[0] < x < high[0] and low[1] < y < high[1]

    def grid_index(self, x: float, y: float) -> tuple[int, int]:
        low, _ = self.grid.limits()
        cell = self.grid.cell_size
        return math.floor((x - low[0]) / cell), math.floor((y - low[1]) / cell)

    def set_params(self, params: PlannerParams) -> None:
        """Apply new parameters; grid size changes take effect on the next run."""
        self.params = params
        self.size_update = (
            self.grid.grid_size != params.grid_size
            or self.grid.cell_size != params.cell_size
            or self.n_lines_padding != params.smoothing_size
        )