"""Jerk-limited trajectory simulation towards a goal direction."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

FLT_EPSILON = 1.1920929e-07


def _divide(numerator: float, denominator: float) -> float:
    """Divide with IEEE semantics: division by zero gives inf or nan."""
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(np.float64(numerator) / np.float64(denominator))


def _sqrt(value: float) -> float:
    with np.errstate(invalid="ignore"):
        return float(np.sqrt(np.float64(value)))


def _ieee_min(a: float, b: float) -> float:
    return b if b < a else a


def _ieee_max(a: float, b: float) -> float:
    return b if a < b else a


def _normalized(vector: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vector))
    if norm > 0.0:
        return vector / norm
    return vector.copy()


def norm_clamp(vector, max_norm: float) -> np.ndarray:
    """Scale ``vector`` down so that its norm does not exceed ``max_norm``."""
    values = np.asarray(vector, dtype=float)
    norm = float(np.linalg.norm(values))
    if norm > max_norm:
        return values * (max_norm / norm)
    return values.copy()


def _xy_norm_z_clamp(value: np.ndarray, max_xy_norm: float, min_z: float, max_z: float) -> np.ndarray:
    result = np.empty(3)
    result[:2] = norm_clamp(value[:2], max_xy_norm)
    result[2] = _ieee_min(max_z, _ieee_max(min_z, float(value[2])))
    return result


def _vector_field() -> np.ndarray:
    return np.zeros(3)


@dataclass
class SimulationLimits:
    """Velocity, acceleration and jerk limits for the simulated vehicle."""

    max_z_velocity: float = math.nan
    min_z_velocity: float = math.nan
    max_xy_velocity_norm: float = math.nan
    max_acceleration_norm: float = math.nan
    max_jerk_norm: float = math.nan


@dataclass
class SimulationState:
    """Kinematic state of the vehicle at one point in time."""

    time: float = 0.0
    position: np.ndarray = field(default_factory=_vector_field)
    velocity: np.ndarray = field(default_factory=_vector_field)
    acceleration: np.ndarray = field(default_factory=_vector_field)

    def __post_init__(self) -> None:
        self.time = float(self.time)
        self.position = np.asarray(self.position, dtype=float).reshape(3)
        self.velocity = np.asarray(self.velocity, dtype=float).reshape(3)
        self.acceleration = np.asarray(self.acceleration, dtype=float).reshape(3)


def simulate_step_constant_jerk(state: SimulationState, jerk, step_time: float) -> SimulationState:
    """Advance ``state`` by ``step_time`` seconds under a constant jerk."""
    jerk = np.asarray(jerk, dtype=float)
    dt = float(step_time)
    position = (
        state.position
        + dt * state.velocity
        + 0.5 * dt**2 * state.acceleration
        + (1.0 / 6.0) * dt**3 * jerk
    )
    velocity = state.velocity + state.acceleration * dt + 0.5 * dt**2 * jerk
    acceleration = state.acceleration + dt * jerk
    return SimulationState(
        time=state.time + dt, position=position, velocity=velocity, acceleration=acceleration
    )


def jerk_for_velocity_setpoint(
    p_constant: float,
    d_constant: float,
    max_jerk_norm: float,
    desired_velocity,
    state: SimulationState,
) -> np.ndarray:
    """PD controller on velocity that returns a norm-limited jerk."""
    accel_diff = -state.acceleration
    velocity_diff = np.asarray(desired_velocity, dtype=float) - state.velocity
    with np.errstate(invalid="ignore"):
        damped = velocity_diff * p_constant + accel_diff * d_constant
    return norm_clamp(damped, max_jerk_norm)


class TrajectorySimulator:
    """Simulates a vehicle accelerating towards a goal direction within limits."""

    def __init__(self, config: SimulationLimits, start: SimulationState, step_time: float = 0.03):
        self.config = config
        self.start = start
        self.step_time = float(step_time)

    def generate_trajectory(self, goal_direction, simulation_duration: float) -> list[SimulationState]:
        """Return the simulated states, one per step, for ``simulation_duration`` seconds."""
        cfg = self.config
        num_steps = math.ceil(_divide(simulation_duration, self.step_time))

        unit_goal = _normalized(np.asarray(goal_direction, dtype=float))
        z_limit = cfg.max_z_velocity if unit_goal[2] > 0 else cfg.min_z_velocity
        with np.errstate(invalid="ignore"):
            desired_velocity = _xy_norm_z_clamp(
                unit_goal * math.hypot(cfg.max_xy_velocity_norm, z_limit),
                cfg.max_xy_velocity_norm,
                cfg.min_z_velocity,
                cfg.max_z_velocity,
            )

        # P and D constants chosen to hit the jerk limit when accelerating from rest
        max_accel_norm = _ieee_min(2 * _sqrt(cfg.max_jerk_norm), cfg.max_acceleration_norm)
        desired_norm = float(np.linalg.norm(desired_velocity))
        p_constant = (
            _divide(
                _sqrt(max_accel_norm**2 + cfg.max_jerk_norm * desired_norm) - max_accel_norm,
                desired_norm,
            )
            * 10
        )
        d_constant = 2 * _sqrt(p_constant)

        timepoints: list[SimulationState] = []
        state = self.start
        for _ in range(num_steps):
            step_time = self.step_time
            damped_jerk = jerk_for_velocity_setpoint(
                p_constant, d_constant, cfg.max_jerk_norm, desired_velocity, state
            )
            requested_accel = state.acceleration + step_time * damped_jerk
            jerk = damped_jerk
            if float(requested_accel @ requested_accel) > max_accel_norm**2:
                step_time = _divide(
                    max_accel_norm - float(np.linalg.norm(state.acceleration)),
                    float(np.linalg.norm(damped_jerk)),
                )
                if step_time <= FLT_EPSILON or step_time > self.step_time:
                    jerk = np.zeros(3)
                    step_time = self.step_time
            state = simulate_step_constant_jerk(state, jerk, step_time)
            timepoints.append(state)
        return timepoints