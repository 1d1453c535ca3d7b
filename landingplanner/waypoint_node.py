"""Node wiring the landing waypoint generator to vehicle state, trajectories and grids."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

import numpy as np

from landingplanner.landing_node import GridMessage
from landingplanner.landing_waypoints import LandingWaypointGenerator, SLPState
from landingplanner.visualization import CUBE, Marker

MAV_CMD_NAV_LAND = 21
SPHERE = "sphere"


def _nan_vector() -> np.ndarray:
    return np.full(3, math.nan)


def yaw_from_quaternion(x: float, y: float, z: float, w: float) -> float:
    """Yaw angle in radians of the rotation given by a quaternion."""
    d = x * x + y * y + z * z + w * w
    s = 2.0 / d
    m20 = s * (x * z - w * y)
    if abs(m20) >= 1.0:
        return 0.0
    m00 = 1.0 - s * (y * y + z * z)
    m10 = s * (x * y + w * z)
    return math.atan2(m10, m00)


@dataclass
class TrajectorySetpoint:
    """One point of a trajectory; unused components are NaN."""

    position: np.ndarray = field(default_factory=_nan_vector)
    velocity: np.ndarray = field(default_factory=_nan_vector)
    acceleration: np.ndarray = field(default_factory=_nan_vector)
    yaw: float = math.nan
    yaw_rate: float = math.nan
    valid: bool = False
    frame_id: str = "local_origin"

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=float).reshape(3)
        self.velocity = np.asarray(self.velocity, dtype=float).reshape(3)
        self.acceleration = np.asarray(self.acceleration, dtype=float).reshape(3)


class WaypointGeneratorNode:
    """Feeds a :class:`LandingWaypointGenerator` and turns its output into setpoints."""

    def __init__(self, publisher: Optional[Callable[[TrajectorySetpoint], None]] = None, **generator_options):
        self.publisher = publisher
        self.generator = LandingWaypointGenerator(self.publish_trajectory_setpoints, **generator_options)
        self.goal_visualization = np.zeros(3)
        self.grid_received = False
        self.last_setpoint: Optional[TrajectorySetpoint] = None
        self.landing_markers: list[Marker] = []
        self.goal_marker: Optional[Marker] = None
        self._goal_marker_id = 0

    def on_position(self, position, orientation) -> None:
        """Update the vehicle position and yaw from a pose."""
        self.generator.position = np.asarray(position, dtype=float).reshape(3).copy()
        self.generator.yaw = yaw_from_quaternion(*(float(c) for c in orientation))

    def on_trajectory(
        self,
        point_1: TrajectorySetpoint,
        point_2: TrajectorySetpoint,
        point_valid: Sequence[bool],
        command: Sequence[int],
    ) -> None:
        """Take a new goal from the flight controller's desired trajectory."""
        generator = self.generator
        moved = float(np.linalg.norm(point_2.position - self.goal_visualization)) > 0.01
        update = moved or bool(np.isnan(generator.goal[:2]).any())

        if update and point_valid[0]:
            generator.goal = point_1.position.copy()
            generator.velocity_setpoint = point_1.velocity.copy()
            generator.is_land_waypoint = command[1] == MAV_CMD_NAV_LAND
        if point_valid[1]:
            self.goal_visualization = point_2.position.copy()
            generator.yaw_setpoint = float(point_2.yaw)
            generator.yaw_speed_setpoint = float(point_2.yaw_rate)

    def on_state(self, mode: str, armed: bool) -> None:
        """React to flight mode and arming changes."""
        generator = self.generator
        if mode == "AUTO.LAND":
            generator.is_land_waypoint = True
        elif mode != "AUTO.MISSION":
            # in missions the land flag comes from the mission item type
            generator.is_land_waypoint = False
            generator.trigger_reset = True

        if not armed:
            generator.is_land_waypoint = False
            generator.trigger_reset = True

    def on_grid(self, message: GridMessage) -> None:
        """Load a landing grid produced by the planner."""
        generator = self.generator
        grid = generator.grid_slp
        generator.grid_slp_seq = message.seq
        if grid.grid_size != message.grid_size or grid.cell_size != message.cell_size:
            grid.resize(message.grid_size, message.cell_size)

        mean = np.asarray(message.mean, dtype=float)
        land = np.asarray(message.land, dtype=int)
        rows, cols = mean.shape
        grid.mean[:rows, :cols] = mean
        grid.land[:rows, :cols] = land[:rows, :cols]

        generator.pos_index = (int(message.curr_pos_index[0]), int(message.curr_pos_index[1]))
        grid.set_filter_limits(generator.position)
        self.grid_received = True

    def publish_trajectory_setpoints(self, position, velocity, yaw: float, yaw_speed: float) -> TrajectorySetpoint:
        """Build and publish a trajectory setpoint; it is valid if xy position or velocity is finite."""
        setpoint = TrajectorySetpoint(position=position, velocity=velocity, yaw=float(yaw), yaw_rate=float(yaw_speed))
        xy_position_valid = bool(np.isfinite(setpoint.position[:2]).all())
        xy_velocity_valid = bool(np.isfinite(setpoint.velocity[:2]).all())
        setpoint.valid = xy_position_valid or xy_velocity_valid
        self.last_setpoint = setpoint
        if self.publisher is not None:
            self.publisher(setpoint)
        return setpoint

    def landing_area_cells(self) -> list[Marker]:
        """Markers for the landing window: green where the hysteresis marks a landable cell."""
        generator = self.generator
        grid = generator.grid_slp
        cell = grid.cell_size
        grid_min, _ = grid.limits()
        offset = grid.land.shape[0] // 2
        slc = generator.smoothing_land_cell

        result = generator.can_land_hysteresis_result
        kernel = np.zeros_like(result)
        height, width = generator.mask.shape
        kernel[offset - slc : offset - slc + height, offset - slc : offset - slc + width] = generator.mask
        landable = result * kernel

        markers = []
        for marker_id, (k, l) in enumerate(
            (k, l) for k in range(offset - slc, offset + slc + 1) for l in range(offset - slc, offset + slc + 1)
        ):
            color = (0.0, 1.0, 0.0, 0.5) if landable[k, l] else (1.0, 0.0, 0.0, 0.5)
            markers.append(
                Marker(
                    id=marker_id,
                    kind=CUBE,
                    position=(float(grid_min[0] + cell * k), float(grid_min[1] + cell * l), 1.0),
                    scale=(cell, cell, 0.1),
                    color=color,
                )
            )
        return markers

    def _goal_visualization(self) -> Marker:
        marker = Marker(
            id=self._goal_marker_id,
            kind=SPHERE,
            position=tuple(float(c) for c in self.generator.goal),
            scale=(0.5, 0.5, 0.5),
            color=(1.0, 1.0, 0.0, 1.0),
        )
        self._goal_marker_id += 1
        return marker

    def step(self) -> Optional[SLPState]:
        """Run one generator iteration if a new grid arrived; returns the new state or None."""
        if not self.grid_received:
            return None
        state = self.generator.calculate_waypoint()
        self.landing_markers = self.landing_area_cells()
        self.goal_marker = self._goal_visualization()
        self.grid_received = False
        return state