"""Square height grid centred on the vehicle."""

from __future__ import annotations

import numpy as np


class Grid:
    """Per-cell height statistics and landing decisions over a square area."""

    def __init__(self, grid_size: float = 10.0, cell_size: float = 1.0):
        self.center = np.zeros(2)
        self.resize(grid_size, cell_size)

    def resize(self, grid_size: float, cell_size: float) -> None:
        """Change the area and cell size; all layers are cleared."""
        if grid_size <= 0 or cell_size <= 0:
            raise ValueError("grid size and cell size must be positive")
        self.grid_size = float(grid_size)
        self.cell_size = float(cell_size)
        n = max(1, int(round(self.grid_size / self.cell_size)))
        self.mean = np.zeros((n, n))
        self.variance = np.zeros((n, n))
        self.counter = np.zeros((n, n), dtype=int)
        self.land = np.zeros((n, n), dtype=int)

    @property
    def row_col_size(self) -> int:
        return self.mean.shape[0]

    def reset(self) -> None:
        """Clear all layers, keeping the size."""
        self.mean.fill(0.0)
        self.variance.fill(0.0)
        self.counter.fill(0)
        self.land.fill(0)

    def set_filter_limits(self, position) -> None:
        """Centre the grid on the xy components of ``position``."""
        self.center = np.asarray(position, dtype=float)[:2].copy()

    def limits(self) -> tuple[np.ndarray, np.ndarray]:
        """Return the lower and upper xy corners of the grid."""
        half = self.grid_size / 2.0
        return self.center - half, self.center + half

    def combine(self, other: "Grid", alpha: float) -> None:
        """Low-pass mean and variance with ``other`` in cells it has observed.

        The result is ``alpha * self + (1 - alpha) * other``; grids of
        different shapes are left untouched.
        """
        if other.mean.shape != self.mean.shape:
            return
        observed = other.counter > 0
        with np.errstate(invalid="ignore"):
            self.mean = np.where(observed, alpha * self.mean + (1 - alpha) * other.mean, self.mean)
            self.variance = np.where(
                observed, alpha * self.variance + (1 - alpha) * other.variance, self.variance
            )