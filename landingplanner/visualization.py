"""Marker descriptions for displaying the landing grid."""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass, field

import numpy as np

from landingplanner.grid import Grid

CUBE = "cube"
LINE_STRIP = "line_strip"
FRAME_ID = "local_origin"


@dataclass
class Marker:
    """A displayable shape in the local frame."""

    id: int
    kind: str
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    orientation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    scale: tuple[float, float, float] = (1.0, 1.0, 1.0)
    color: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    points: list = field(default_factory=list)
    frame_id: str = FRAME_ID


def _divide(numerator: float, denominator: float) -> float:
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(numerator) / np.float64(denominator))


def hsv_to_rgb(h: float, s: float, v: float) -> tuple[float, float, float]:
    """Convert hue in degrees, saturation and value to RGB in [0, 1]."""
    chroma = v * s
    h_prime = math.fmod(h / 60.0, 6) if math.isfinite(h) else math.nan
    x = chroma * (1 - abs(math.fmod(h_prime, 2) - 1)) if math.isfinite(h_prime) else math.nan
    m = v - chroma

    if 0 <= h_prime < 1:
        rgb = (chroma, x, 0.0)
    elif 1 <= h_prime < 2:
        rgb = (x, chroma, 0.0)
    elif 2 <= h_prime < 3:
        rgb = (0.0, chroma, x)
    elif 3 <= h_prime < 4:
        rgb = (0.0, x, chroma)
    elif 4 <= h_prime < 5:
        rgb = (x, 0.0, chroma)
    elif 5 <= h_prime < 6:
        rgb = (chroma, 0.0, x)
    else:
        rgb = (0.0, 0.0, 0.0)
    return rgb[0] + m, rgb[1] + m, rgb[2] + m


def _cells(grid: Grid):
    low, _ = grid.limits()
    cell = grid.cell_size
    for marker_id, (i, j) in enumerate(itertools.product(range(grid.row_col_size), repeat=2)):
        yield marker_id, i, j, i * cell + low[0] + cell / 2, j * cell + low[1] + cell / 2


def mean_std_dev_markers(grid: Grid, std_dev_threshold: float) -> list[Marker]:
    """One cube per cell at its mean height, coloured by standard deviation."""
    markers = []
    for marker_id, i, j, x, y in _cells(grid):
        with np.errstate(invalid="ignore"):
            std_dev = float(np.sqrt(grid.variance[i, j]))
        hue = _divide(360.0 * std_dev, std_dev_threshold)
        r, g, b = hsv_to_rgb(hue, 1.0, 1.0)
        if std_dev > std_dev_threshold:
            r, g, b = 0.0, 0.0, 0.0
        markers.append(
            Marker(
                id=marker_id,
                kind=CUBE,
                position=(x, y, float(grid.mean[i, j])),
                scale=(grid.cell_size, grid.cell_size, 0.1),
                color=(r, g, b, 0.5),
            )
        )
    return markers


def counter_markers(grid: Grid, n_points_threshold: float) -> list[Marker]:
    """One cube per cell, coloured by how many points fell into it."""
    counter_max = 400.0
    markers = []
    for marker_id, i, j, x, y in _cells(grid):
        hue = _divide(360.0 * (float(grid.counter[i, j]) - n_points_threshold), counter_max - n_points_threshold)
        r, g, b = hsv_to_rgb(hue, 1.0, 1.0)
        markers.append(
            Marker(
                id=marker_id,
                kind=CUBE,
                position=(x, y, 0.0),
                scale=(grid.cell_size, grid.cell_size, 0.1),
                color=(r, g, b, 0.5),
            )
        )
    return markers


def grid_markers(grid: Grid, smoothing_size: float) -> list[Marker]:
    """One cube per cell, green if landable and red otherwise; the centre window is taller."""
    offset = grid.land.shape[0] // 2
    low_edge, high_edge = offset - smoothing_size, offset + smoothing_size
    markers = []
    for marker_id, i, j, x, y in _cells(grid):
        color = (0.0, 1.0, 0.0, 0.5) if grid.land[i, j] else (1.0, 0.0, 0.0, 0.5)
        in_window = low_edge <= i < high_edge and low_edge <= j < high_edge
        markers.append(
            Marker(
                id=marker_id,
                kind=CUBE,
                position=(x, y, 0.0),
                scale=(grid.cell_size, grid.cell_size, 0.8 if in_window else 0.1),
                color=color,
            )
        )
    return markers


def path_marker(position, last_position, marker_id: int) -> Marker:
    """A green line segment from the previous to the current position."""
    return Marker(
        id=marker_id,
        kind=LINE_STRIP,
        scale=(0.03, 0.0, 0.0),
        color=(0.0, 1.0, 0.0, 1.0),
        points=[tuple(float(c) for c in last_position), tuple(float(c) for c in position)],
    )