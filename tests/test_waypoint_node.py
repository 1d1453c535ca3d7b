import math

import numpy as np
import pytest

from landingplanner.landing_node import GridMessage
from landingplanner.landing_waypoints import SLPState
from landingplanner.waypoint_node import TrajectorySetpoint, WaypointGeneratorNode, yaw_from_quaternion


def _grid_message(seq=1):
    return GridMessage(
        seq=seq,
        grid_size=10.0,
        cell_size=1.0,
        mean=np.zeros((10, 10)),
        land=np.ones((10, 10), dtype=int),
    )


def test_yaw_identity_is_zero():
    assert yaw_from_quaternion(0.0, 0.0, 0.0, 1.0) == pytest.approx(0.0)


def test_yaw_quarter_turn_about_z():
    half = math.sqrt(0.5)
    assert yaw_from_quaternion(0.0, 0.0, half, half) == pytest.approx(math.pi / 2)


def test_yaw_is_scale_invariant():
    assert yaw_from_quaternion(0.0, 0.0, 0.6, 0.8) == pytest.approx(yaw_from_quaternion(0.0, 0.0, 1.2, 1.6))


def test_publish_valid_with_finite_position():
    received = []
    node = WaypointGeneratorNode(received.append)
    setpoint = node.publish_trajectory_setpoints([1.0, 2.0, 3.0], [math.nan] * 3, 0.5, math.nan)
    assert setpoint.valid
    assert received == [setpoint]
    assert np.isnan(setpoint.acceleration).all()
    assert setpoint.yaw == 0.5


def test_publish_valid_with_finite_xy_velocity_only():
    node = WaypointGeneratorNode()
    setpoint = node.publish_trajectory_setpoints([math.nan] * 3, [0.1, 0.2, math.nan], 0.0, 0.0)
    assert setpoint.valid
    assert node.last_setpoint is setpoint


def test_publish_invalid_without_xy():
    node = WaypointGeneratorNode()
    setpoint = node.publish_trajectory_setpoints([math.nan, math.nan, 1.0], [math.nan, math.nan, -0.7], 0.0, 0.0)
    assert not setpoint.valid


def test_on_state_land_mode_sets_land_waypoint():
    node = WaypointGeneratorNode()
    node.on_state("AUTO.LAND", True)
    assert node.generator.is_land_waypoint
    assert not node.generator.trigger_reset


def test_on_state_other_mode_resets():
    node = WaypointGeneratorNode()
    node.generator.is_land_waypoint = True
    node.on_state("POSCTL", True)
    assert not node.generator.is_land_waypoint
    assert node.generator.trigger_reset


def test_on_state_mission_keeps_flag_unless_disarmed():
    node = WaypointGeneratorNode()
    node.generator.is_land_waypoint = True
    node.on_state("AUTO.MISSION", True)
    assert node.generator.is_land_waypoint
    node.on_state("AUTO.MISSION", False)
    assert not node.generator.is_land_waypoint
    assert node.generator.trigger_reset


def test_on_trajectory_sets_goal_and_land_flag():
    node = WaypointGeneratorNode()
    point_1 = TrajectorySetpoint(position=[1.0, 2.0, 3.0], velocity=[0.0, 0.0, 0.0])
    point_2 = TrajectorySetpoint(position=[4.0, 5.0, 6.0], yaw=0.3, yaw_rate=0.1)
    node.on_trajectory(point_1, point_2, [True, True, False, False, False], [16, 21])
    assert list(node.generator.goal) == [1.0, 2.0, 3.0]
    assert node.generator.is_land_waypoint
    assert list(node.goal_visualization) == [4.0, 5.0, 6.0]
    assert node.generator.yaw_setpoint == pytest.approx(0.3)
    assert node.generator.yaw_speed_setpoint == pytest.approx(0.1)


def test_on_trajectory_ignores_unchanged_next_point():
    node = WaypointGeneratorNode()
    point_2 = TrajectorySetpoint(position=[4.0, 5.0, 6.0])
    node.on_trajectory(TrajectorySetpoint(position=[1.0, 2.0, 3.0]), point_2, [True, True], [16, 16])
    node.on_trajectory(TrajectorySetpoint(position=[9.0, 9.0, 9.0]), point_2, [True, True], [16, 16])
    assert list(node.generator.goal) == [1.0, 2.0, 3.0]
    assert not node.generator.is_land_waypoint


def test_on_grid_loads_layers():
    node = WaypointGeneratorNode()
    message = _grid_message(seq=4)
    message.mean[3, 4] = 2.5
    message.curr_pos_index = (5.0, 6.0)
    node.on_grid(message)
    grid = node.generator.grid_slp
    assert node.grid_received
    assert node.generator.grid_slp_seq == 4
    assert grid.mean[3, 4] == 2.5
    np.testing.assert_array_equal(grid.land, message.land)
    assert node.generator.pos_index == (5, 6)


def test_step_requires_grid():
    node = WaypointGeneratorNode()
    assert node.step() is None


def test_step_runs_generator_and_publishes():
    received = []
    node = WaypointGeneratorNode(received.append)
    node.on_grid(_grid_message())
    state = node.step()
    assert state == SLPState.GOTO
    assert not node.grid_received
    assert len(received) == 1
    assert len(node.landing_markers) == (2 * node.generator.smoothing_land_cell + 1) ** 2
    assert node.goal_marker.id == 0


def test_landing_area_cells_all_red_without_hysteresis():
    node = WaypointGeneratorNode()
    markers = node.landing_area_cells()
    assert all(marker.color[0] == 1.0 for marker in markers)


def test_landing_area_cells_green_matches_mask():
    node = WaypointGeneratorNode()
    node.generator.can_land_hysteresis_result = np.ones_like(node.generator.can_land_hysteresis_result)
    markers = node.landing_area_cells()
    green = sum(1 for marker in markers if marker.color[1] == 1.0)
    assert green == int(node.generator.mask.sum())
    assert [marker.id for marker in markers] == list(range(len(markers)))