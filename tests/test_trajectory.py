import numpy as np
import pytest

from landingplanner.trajectory import (
    SimulationLimits,
    SimulationState,
    TrajectorySimulator,
    jerk_for_velocity_setpoint,
    norm_clamp,
    simulate_step_constant_jerk,
)


def _unit(v):
    n = np.linalg.norm(v)
    return v / n if n > 0 else v


def assert_respects_limits(config, start, steps):
    last = start
    for step in steps:
        dt = step.time - last.time
        jerk = (step.acceleration - last.acceleration) / dt
        last = step
        eps = 1e-5
        assert np.linalg.norm(jerk) <= config.max_jerk_norm + eps
        assert np.linalg.norm(step.acceleration) <= config.max_acceleration_norm + eps
        assert np.linalg.norm(step.velocity[:2]) <= config.max_xy_velocity_norm + eps


def assert_goes_in_goal_direction(goal_dir, start, steps):
    last = start
    for step in steps:
        dt = step.time - last.time
        jerk = (step.acceleration - last.acceleration) / dt
        last = step
        vel_dir_error = _unit(step.velocity) - _unit(goal_dir)
        if vel_dir_error @ _unit(step.acceleration) > 0:
            assert jerk @ vel_dir_error <= 1e-9


def _config(max_accel):
    return SimulationLimits(
        max_z_velocity=1.0,
        min_z_velocity=-0.5,
        max_xy_velocity_norm=3.0,
        max_acceleration_norm=max_accel,
        max_jerk_norm=20.0,
    )


def test_norm_clamp_works_with_zeros():
    clamped = norm_clamp(np.zeros(3), 0)
    assert np.linalg.norm(clamped) == 0.0
    assert not np.isnan(clamped).any()


def test_norm_clamp_passes_short_vectors():
    short_vec = np.array([0.5, 0.6, 0.7])
    clamped = norm_clamp(short_vec, 5.0)
    assert np.linalg.norm(short_vec - clamped) == 0.0


def test_norm_clamp_clamps_long_vectors():
    long_vec = np.array([5.0, 6.0, 7.0])
    clamped = norm_clamp(long_vec, 5.0)
    assert np.linalg.norm(clamped) == pytest.approx(5.0)
    assert _unit(clamped) @ _unit(long_vec) == pytest.approx(1.0)


def test_gives_empty_list_with_no_steps():
    sim = TrajectorySimulator(SimulationLimits(), SimulationState())
    steps = sim.generate_trajectory(np.zeros(3), 0)
    assert len(steps) == 0


def test_gives_constant_vel_when_vel_correct():
    state = SimulationState(time=0.0, velocity=[3.0, 0.0, 0.0])
    config = _config(3.0)
    sim = TrajectorySimulator(config, state)
    sim_time = 10
    steps = sim.generate_trajectory(np.array([1.0, 0.0, 0.0]), sim_time)

    for step in steps:
        assert np.linalg.norm(state.velocity - step.velocity) < 1e-5
        assert np.linalg.norm(step.acceleration) < 1e-5
    assert_respects_limits(config, state, steps)
    assert steps[-1].time > sim_time + state.time


@pytest.mark.parametrize(
    "start_velocity, goal_dir, start_time",
    [
        ([-3.0, 0.0, 0.0], [1.0, 0.0, 0.0], 0.0),
        ([3.0, 0.0, 0.0], [0.0, 1.0, 0.0], 8.0),
    ],
)
def test_accelerates_to_constant_vel(start_velocity, goal_dir, start_time):
    state = SimulationState(time=start_time, velocity=start_velocity)
    config = _config(4.0)
    sim = TrajectorySimulator(config, state)
    goal_dir = np.array(goal_dir)
    sim_time = 10
    steps = sim.generate_trajectory(goal_dir, sim_time)

    assert_goes_in_goal_direction(goal_dir, state, steps)
    assert_respects_limits(config, state, steps)

    last = steps[-1]
    assert np.linalg.norm(_unit(last.velocity) - _unit(goal_dir)) < 1e-5
    assert np.linalg.norm(last.acceleration) < 1e-5
    assert last.time > sim_time + state.time


def test_simulate_step_zero_jerk_keeps_velocity():
    state = SimulationState(time=1.0, position=[1.0, 2.0, 3.0], velocity=[2.0, 0.0, -1.0])
    nxt = simulate_step_constant_jerk(state, np.zeros(3), 0.5)
    assert np.allclose(nxt.velocity, state.velocity)
    assert np.allclose(nxt.position, state.position + 0.5 * state.velocity)
    assert nxt.time == pytest.approx(1.5)


def test_jerk_for_velocity_setpoint_is_norm_limited():
    state = SimulationState(velocity=[0.0, 0.0, 0.0])
    jerk = jerk_for_velocity_setpoint(100.0, 10.0, 2.0, np.array([5.0, 5.0, 0.0]), state)
    assert np.linalg.norm(jerk) == pytest.approx(2.0)
    assert _unit(jerk) @ _unit(np.array([1.0, 1.0, 0.0])) == pytest.approx(1.0)