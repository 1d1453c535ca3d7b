"""State machine that searches the landing grid for a safe spot and lands there."""

from __future__ import annotations

import logging
import math
from enum import Enum, auto
from typing import Callable, Optional

import numpy as np

from landingplanner.grid import Grid

logger = logging.getLogger(__name__)

LAND_SPEED = 0.7

# Offsets, in units of the exploration step, visited one after another when searching.
EXPLORATION_PATTERN: tuple[tuple[int, int], ...] = (
    (1, 0),
    (1, 1),
    (0, 1),
    (-1, 1),
    (-1, 0),
    (-1, -1),
    (0, -1),
    (1, -1),
)

SetpointPublisher = Callable[[np.ndarray, np.ndarray, float, float], None]


class SLPState(Enum):
    GOTO = auto()
    LOITER = auto()
    LAND = auto()
    ALTITUDE_CHANGE = auto()
    EVALUATE_GRID = auto()
    GOTO_LAND = auto()


class Transition(Enum):
    REPEAT = auto()
    NEXT1 = auto()
    NEXT2 = auto()
    NEXT3 = auto()
    ERROR = auto()


_STATE_NAMES = {
    SLPState.GOTO: "GOTO",
    SLPState.ALTITUDE_CHANGE: "ALTITUDE CHANGE",
    SLPState.LOITER: "LOITER",
    SLPState.LAND: "LAND",
    SLPState.EVALUATE_GRID: "EVALUATE_GRID",
    SLPState.GOTO_LAND: "GOTO_LAND",
}

_ERROR_STATE = SLPState.GOTO

_TRANSITIONS: dict[SLPState, dict[Transition, SLPState]] = {
    SLPState.GOTO: {Transition.NEXT1: SLPState.ALTITUDE_CHANGE},
    SLPState.ALTITUDE_CHANGE: {Transition.NEXT1: SLPState.LOITER},
    SLPState.LOITER: {Transition.NEXT1: SLPState.EVALUATE_GRID},
    SLPState.EVALUATE_GRID: {
        Transition.NEXT1: SLPState.GOTO,
        Transition.NEXT2: SLPState.GOTO_LAND,
    },
    SLPState.GOTO_LAND: {Transition.NEXT1: SLPState.LAND},
    SLPState.LAND: {},
}


def state_name(state: SLPState) -> str:
    """Human-readable name of a planner state."""
    return _STATE_NAMES.get(state, "unknown")


def _nan_vector() -> np.ndarray:
    return np.full(3, math.nan)


def _next_yaw(position: np.ndarray, goal: np.ndarray) -> float:
    return math.atan2(float(goal[1] - position[1]), float(goal[0] - position[0]))


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


class LandingWaypointGenerator:
    """Generates position and velocity setpoints that lead the vehicle to a safe landing."""

    def __init__(
        self,
        publish: Optional[SetpointPublisher] = None,
        *,
        beta: float = 0.9,
        can_land_thr: float = 0.4,
        loiter_height: float = 4.0,
        smoothing_land_cell: int = 2,
        vertical_range_error: float = 1.0,
        spiral_width: float = 2.0,
        stride: int = 1,
    ):
        self.publish_trajectory_setpoints = publish
        self.beta = beta
        self.can_land_thr = can_land_thr
        self.loiter_height = loiter_height
        self.smoothing_land_cell = smoothing_land_cell
        self.vertical_range_error = vertical_range_error
        self.spiral_width = spiral_width
        self.stride = stride

        self.position = np.zeros(3)
        self.yaw = 0.0
        self.goal = _nan_vector()
        self.velocity_setpoint = _nan_vector()
        self.yaw_setpoint = math.nan
        self.yaw_speed_setpoint = math.nan
        self.is_land_waypoint = False
        self.trigger_reset = False
        self.update_smoothing_size = False

        self.grid_slp = Grid()
        self.grid_slp_seq = 0
        self.pos_index = (0, 0)

        self.loiter_position = _nan_vector()
        self.loiter_yaw = math.nan
        self.exploration_anchor = _nan_vector()
        self.decision_taken = False
        self.can_land = True
        self.exploration_is_active = False
        self.n_explored_pattern = -1
        self.factor_exploration = 1.0
        self.landing_radius = 2.0
        self.altitude_landing_area_percentile = math.nan
        self.start_seq_landing_decision = 0

        self._state = SLPState.GOTO
        self.prev_slp_state = SLPState.GOTO
        self.state_changed = False

        size = 2 * smoothing_land_cell + 1
        self.mask = np.zeros((size, size), dtype=int)
        self.initialize_mask()
        shape = self.grid_slp.land.shape
        self.can_land_hysteresis_matrix = np.zeros(shape)
        self.can_land_hysteresis_result = np.zeros(shape, dtype=int)

    @property
    def state(self) -> SLPState:
        return self._state

    def _publish(self, position, velocity, yaw: float, yaw_speed: float) -> None:
        if self.publish_trajectory_setpoints is None:
            logger.error("publish_trajectory_setpoints not set in LandingWaypointGenerator")
            return
        self.publish_trajectory_setpoints(
            np.array(position, dtype=float), np.array(velocity, dtype=float), float(yaw), float(yaw_speed)
        )

    def initialize_mask(self) -> None:
        """Fill the mask with a disc of radius ``smoothing_land_cell`` around its centre."""
        rows, cols = self.mask.shape
        i, j = np.indices((rows, cols))
        slc = self.smoothing_land_cell
        self.mask = (np.hypot(i - slc, j - slc) < slc + 0.5).astype(int)

    def calculate_waypoint(self) -> SLPState:
        """Run one iteration of the state machine and return the resulting state."""
        self.update_slp_state()
        transition = self.run_current_state()
        if transition is not Transition.REPEAT:
            self._state = self._choose_next_state(self._state, transition)
        if self._state != self.prev_slp_state:
            logger.info("[WGN] Update to %s state", state_name(self._state))
        return self._state

    def update_slp_state(self) -> None:
        """Keep the mask and hysteresis matrices in shape and reset when not landing."""
        size = 2 * self.smoothing_land_cell + 1
        if self.update_smoothing_size or self.mask.shape[0] != size:
            self.mask = np.zeros((size, size), dtype=int)
            self.initialize_mask()
            self.update_smoothing_size = False

        land_shape = self.grid_slp.land.shape
        if land_shape[0] != self.can_land_hysteresis_matrix.shape[0]:
            self.can_land_hysteresis_matrix = np.zeros(land_shape)
            self.can_land_hysteresis_result = np.zeros(land_shape, dtype=int)

        if not self.is_land_waypoint:
            self.decision_taken = False
            self.can_land = True
            self.can_land_hysteresis_matrix.fill(0.0)
            self.exploration_is_active = False
            self.n_explored_pattern = -1
            self.factor_exploration = 1.0
            self.landing_radius = 2.0
            logger.info("[WGN] Not a land waypoint")

    def _choose_next_state(self, current: SLPState, transition: Transition) -> SLPState:
        self.prev_slp_state = current
        self.state_changed = True
        return _TRANSITIONS.get(current, {}).get(transition, _ERROR_STATE)

    def run_current_state(self) -> Transition:
        """Execute the behaviour of the current state and return the requested transition."""
        if self.trigger_reset:
            self.trigger_reset = False
            return Transition.ERROR
        handlers = {
            SLPState.GOTO: self._run_goto,
            SLPState.ALTITUDE_CHANGE: self._run_altitude_change,
            SLPState.LOITER: self._run_loiter,
            SLPState.LAND: self._run_land,
            SLPState.EVALUATE_GRID: self._run_evaluate_grid,
            SLPState.GOTO_LAND: self._run_goto_land,
        }
        transition = handlers[self._state]()
        self.state_changed = False
        return transition

    def _run_goto(self) -> Transition:
        if self.exploration_is_active:
            self.landing_radius = 0.5
            self.yaw_setpoint = _next_yaw(self.position, self.goal)

        self._publish(self.goal, self.velocity_setpoint, self.yaw_setpoint, self.yaw_speed_setpoint)
        logger.info("[WGN] goTo %s - %s", self.goal, self.velocity_setpoint)
        self.altitude_landing_area_percentile = self.landing_area_height_percentile(80.0)
        self.can_land_hysteresis_matrix.fill(0.0)

        within = self.within_landing_radius()
        if within and self.is_land_waypoint and not self.decision_taken:
            return Transition.NEXT1

        if within and self.is_land_waypoint and self.decision_taken and not self.can_land:
            if not self.exploration_is_active:
                self.exploration_anchor = self.loiter_position.copy()
                self.exploration_is_active = True
            self.n_explored_pattern += 1
            if self.n_explored_pattern == len(EXPLORATION_PATTERN):
                self.n_explored_pattern = 0
                self.factor_exploration += 1.0
            offset = (
                self.spiral_width
                * self.factor_exploration
                * 2.0
                * float(self.smoothing_land_cell)
                * self.grid_slp.cell_size
            )
            dx, dy = EXPLORATION_PATTERN[self.n_explored_pattern]
            anchor = self.exploration_anchor
            self.goal = np.array([anchor[0] + offset * dx, anchor[1] + offset * dy, anchor[2]])
            self.velocity_setpoint = _nan_vector()
            self.decision_taken = False
        return Transition.REPEAT

    def _run_goto_land(self) -> Transition:
        yaw = _next_yaw(self.position, self.goal)
        self._publish(self.goal, self.velocity_setpoint, yaw, self.yaw_speed_setpoint)
        logger.info("[WGN] goToLand %s - %s yaw %f", self.goal, self.velocity_setpoint, yaw)
        if self.within_landing_radius():
            return Transition.NEXT1
        return Transition.REPEAT

    def _run_altitude_change(self) -> Transition:
        if self.state_changed:
            self.loiter_yaw = self.yaw
        self.goal = self.goal.copy()
        self.goal[2] = math.nan
        self.altitude_landing_area_percentile = self.landing_area_height_percentile(80.0)
        height = abs(self.position[2] - self.altitude_landing_area_percentile)
        direction = 1.0 if height - self.loiter_height < 0.0 else -1.0
        self.velocity_setpoint = self.velocity_setpoint.copy()
        self.velocity_setpoint[2] = direction * LAND_SPEED
        self._publish(self.goal, self.velocity_setpoint, self.loiter_yaw, self.yaw_speed_setpoint)
        logger.info("[WGN] altitudeChange %s - %s", self.goal, self.velocity_setpoint)

        if self.in_vertical_range():
            self.start_seq_landing_decision = self.grid_slp_seq
            return Transition.NEXT1
        return Transition.REPEAT

    def _run_loiter(self) -> Transition:
        if self.state_changed:
            self.loiter_position = self.position.copy()
            self.goal = self.loiter_position.copy()

        self._publish(self.loiter_position, _nan_vector(), self.loiter_yaw, math.nan)
        logger.info("[WGN] Loiter %s yaw %f", self.loiter_position, self.loiter_yaw)

        if abs(self.grid_slp_seq - self.start_seq_landing_decision) <= 20:
            land = self.grid_slp.land.astype(float)
            self.can_land_hysteresis_matrix = (
                self.beta * self.can_land_hysteresis_matrix + (1.0 - self.beta) * land
            )
            return Transition.REPEAT

        matrix = self.can_land_hysteresis_matrix
        matrix = np.where(matrix <= self.can_land_thr, 0.0, matrix)
        matrix = np.where(matrix > self.can_land_thr, 1.0, matrix)
        self.can_land_hysteresis_matrix = matrix
        self.can_land_hysteresis_result = np.trunc(matrix).astype(int)
        return Transition.NEXT1

    def _run_land(self) -> Transition:
        if self.state_changed:
            self.loiter_position = self.position.copy()
            self.loiter_yaw = self.yaw
        self.loiter_position = self.loiter_position.copy()
        self.loiter_position[2] = math.nan
        velocity = _nan_vector()
        velocity[2] = -LAND_SPEED
        self._publish(self.loiter_position, velocity, self.loiter_yaw, math.nan)
        logger.info("[WGN] Land %s yaw %f", self.loiter_position, self.loiter_yaw)
        return Transition.REPEAT

    def _run_evaluate_grid(self) -> Transition:
        self._publish(self.loiter_position, _nan_vector(), self.loiter_yaw, math.nan)
        logger.info("[WGN] runEvaluateGrid %s yaw %f", self.loiter_position, self.loiter_yaw)

        self.landing_radius = 0.5
        rows, cols = self.grid_slp.land.shape
        center = (rows // 2, cols // 2)
        slc = self.smoothing_land_cell

        self.can_land = self.evaluate_patch((center[0] - slc, center[1] - slc))
        if self.can_land:
            self.decision_taken = True
            return Transition.NEXT2

        n_iterations = _trunc_div(1 + _trunc_div(rows - (2 * slc + 1), self.stride), 2)
        cell = self.grid_slp.cell_size
        for i in range(1, n_iterations):
            for dx, dy in EXPLORATION_PATTERN:
                corner = (
                    center[0] + dx * i * self.stride - slc,
                    center[1] + dy * i * self.stride - slc,
                )
                self.can_land = self.evaluate_patch(corner)
                if self.can_land:
                    self.decision_taken = True
                    self.goal = np.array(
                        [
                            self.position[0] + (corner[0] + slc - rows // 2) * cell,
                            self.position[1] + (corner[1] + slc - cols // 2) * cell,
                            self.position[2],
                        ]
                    )
                    self.velocity_setpoint = self.velocity_setpoint.copy()
                    self.velocity_setpoint[2] = math.nan
                    logger.info("[WGN] Found landing area in grid at %s", self.goal)
                    return Transition.NEXT2
        self.decision_taken = True
        return Transition.NEXT1

    def evaluate_patch(self, left_upper_corner) -> bool:
        """True if every mask cell of the patch at ``left_upper_corner`` is landable."""
        row, col = (int(v) for v in left_upper_corner)
        height, width = self.mask.shape
        result = self.can_land_hysteresis_result
        if row < 0 or col < 0 or row + height > result.shape[0] or col + width > result.shape[1]:
            raise ValueError(f"patch at {(row, col)} does not fit in the grid")
        patch = result[row : row + height, col : col + width]
        return int((patch * self.mask).sum()) == int(self.mask.sum())

    def within_landing_radius(self) -> bool:
        """True if the goal is horizontally closer than the landing radius."""
        distance = float(np.linalg.norm(self.goal[:2] - self.position[:2]))
        return distance < self.landing_radius

    def in_vertical_range(self) -> bool:
        """True if the height above the landing area is close to the loiter height."""
        height = abs(self.position[2] - self.altitude_landing_area_percentile)
        return abs(height - self.loiter_height) < self.vertical_range_error

    def landing_area_height_percentile(self, percentile: float) -> float:
        """Height percentile of the grid cells in the window around the grid centre."""
        slc = self.smoothing_land_cell
        center = self.grid_slp.land.shape[0] // 2
        low, high = center - slc, center + slc + 1
        if low < 0 or high > self.grid_slp.mean.shape[0] or high > self.grid_slp.mean.shape[1]:
            raise ValueError("landing area window does not fit in the grid")
        values = np.sort(self.grid_slp.mean[low:high, low:high], axis=None)
        index = _round_half_away(percentile / 100.0 * values.size)
        if not 0 <= index < values.size:
            raise IndexError(f"percentile {percentile} is out of range")
        return float(values[index])