"""Node that feeds the safe landing planner, watches its timing and serialises its grid."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Optional

import numpy as np

from landingplanner.planner import PlannerParams, SafeLandingPlanner
from landingplanner.visualization import (
    Marker,
    counter_markers,
    grid_markers,
    mean_std_dev_markers,
    path_marker,
)

AVOIDANCE_COMPONENT_ID = 196
STATUS_PERIOD = 0.2


class SystemState(IntEnum):
    """Companion process health as reported to the flight controller."""

    UNINIT = 0
    BOOT = 1
    CALIBRATING = 2
    STANDBY = 3
    ACTIVE = 4
    CRITICAL = 5
    EMERGENCY = 6
    POWEROFF = 7
    FLIGHT_TERMINATION = 8


def _empty_float() -> np.ndarray:
    return np.zeros((0, 0))


def _empty_int() -> np.ndarray:
    return np.zeros((0, 0), dtype=int)


@dataclass
class GridMessage:
    """A serialised landing grid: per-cell layers as row-major 2D arrays."""

    seq: int = 0
    grid_size: float = 0.0
    cell_size: float = 0.0
    mean: np.ndarray = field(default_factory=_empty_float)
    land: np.ndarray = field(default_factory=_empty_int)
    std_dev: np.ndarray = field(default_factory=_empty_float)
    counter: np.ndarray = field(default_factory=_empty_int)
    curr_pos_index: tuple[float, float] = (0.0, 0.0)
    frame_id: str = "local_origin"


StatusPublisher = Callable[[SystemState, int, float], None]
GridPublisher = Callable[[GridMessage], None]


class SafeLandingPlannerNode:
    """Drives a :class:`SafeLandingPlanner` from incoming data and a periodic step."""

    def __init__(
        self,
        params: Optional[PlannerParams] = None,
        *,
        play_rosbag: bool = False,
        start_time: float = 0.0,
        status_publisher: Optional[StatusPublisher] = None,
        grid_publisher: Optional[GridPublisher] = None,
    ):
        self.planner = SafeLandingPlanner(params, play_rosbag=play_rosbag)
        self.status = SystemState.ACTIVE
        self.status_publisher = status_publisher
        self.grid_publisher = grid_publisher

        self.start_time = float(start_time)
        self.last_algo_time = 0.0
        self.t_status_sent = 0.0

        self.position = np.zeros(3)
        self.previous_position = np.zeros(3)
        self.orientation = (0.0, 0.0, 0.0, 1.0)
        self.position_received = False

        self.cloud_transformed = False
        self.markers: dict[str, list[Marker]] = {}
        self._lock = threading.Lock()
        self._waiting_since: Optional[float] = None
        self._grid_seq = 0
        self._path_length = 0

    def check_failsafe(self, since_last_algo: float, since_start: float) -> None:
        """Escalate the status if the planner has not run for too long."""
        params = self.planner.params
        if since_last_algo > params.timeout_termination and since_start > params.timeout_termination:
            self.status = SystemState.FLIGHT_TERMINATION
        elif since_last_algo > params.timeout_critical and since_start > params.timeout_critical:
            self.status = SystemState.CRITICAL

    def on_position(self, position, orientation=(0.0, 0.0, 0.0, 1.0)) -> None:
        """Record a new vehicle pose."""
        self.previous_position = self.position
        self.position = np.asarray(position, dtype=float).reshape(3).copy()
        self.orientation = tuple(float(c) for c in orientation)
        self.position_received = True

    def on_raw_grid(self, message: GridMessage) -> None:
        """Accept a recorded grid to be replayed on the next step."""
        with self._lock:
            self.planner.raw_grid = message
            self.cloud_transformed = True

    def on_pointcloud(self, points) -> None:
        """Accept a point cloud in the local frame; points holding NaN are dropped."""
        cloud = [
            tuple(float(c) for c in point[:3])
            for point in points
            if not any(math.isnan(float(c)) for c in point[:3])
        ]
        with self._lock:
            self.planner.cloud = cloud
            self.cloud_transformed = True

    def serialize_grid(self) -> GridMessage:
        """Build a grid message from the planner's previous grid."""
        grid = self.planner.previous_grid
        with np.errstate(invalid="ignore"):
            std_dev = np.sqrt(grid.variance)
        row, col = self.planner.pos_index
        message = GridMessage(
            seq=self._grid_seq,
            grid_size=grid.grid_size,
            cell_size=grid.cell_size,
            mean=grid.mean.copy(),
            land=grid.land.copy(),
            std_dev=std_dev,
            counter=grid.counter.copy(),
            curr_pos_index=(float(row), float(col)),
        )
        self._grid_seq += 1
        return message

    def _publish_status(self, now: float) -> None:
        if self.status_publisher is not None:
            self.status_publisher(self.status, AVOIDANCE_COMPONENT_ID, now)
        self.t_status_sent = now

    def _visualize(self) -> dict[str, list[Marker]]:
        planner = self.planner
        markers = {
            "grid": grid_markers(planner.grid, planner.params.smoothing_size),
            "mean_std_dev": mean_std_dev_markers(planner.grid, planner.params.std_dev_thr),
            "counter": counter_markers(planner.grid, planner.params.n_points_thr),
            "path": [path_marker(self.position, self.previous_position, self._path_length)],
        }
        self._path_length += 1
        return markers

    def step(self, now: float) -> Optional[GridMessage]:
        """Run one planner cycle at time ``now``; returns the grid message, or None without data."""
        self.status = SystemState.ACTIVE
        with self._lock:
            ready = self.cloud_transformed
        if not ready:
            if self._waiting_since is None:
                self._waiting_since = now
            if now - self._waiting_since > self.planner.params.timeout_termination:
                self.status = SystemState.FLIGHT_TERMINATION
                self._publish_status(now)
            return None
        self._waiting_since = None

        self.check_failsafe(now - self.last_algo_time, now - self.start_time)
        self.planner.set_pose(self.position, self.orientation)
        with self._lock:
            self.planner.run()
            self.cloud_transformed = False

        self.markers = self._visualize()
        message = self.serialize_grid()
        if self.grid_publisher is not None:
            self.grid_publisher(message)
        self.last_algo_time = now

        if now - self.t_status_sent > STATUS_PERIOD:
            self._publish_status(now)
        return message