# landingplanner

Tools for letting a multicopter find a safe place to land and get there.

The package bins a downward-looking point cloud into a square grid centred on
the vehicle. For every cell it tracks the mean height, the variance and the
point count, and it marks a cell as landable when enough points fell into it,
their spread is small, and enough neighbouring cells are landable with a
similar height. A landing state machine then uses that grid: it changes
altitude until it is at a loiter height above the landing area, watches the
grid for a while, picks a landable patch (moving outwards in a search pattern
when nothing below is good enough) and finally descends.

## Modules

- `landingplanner.grid` – `Grid`, the square height grid with `mean`,
  `variance`, `counter` and `land` layers: `resize`, `reset`,
  `set_filter_limits` (centre the grid on a position), `limits()` (lower and
  upper xy corners) and `combine` (low-pass filter with another grid in the
  cells that grid has observed).
- `landingplanner.planner` – `SafeLandingPlanner` and its `PlannerParams`.
  `run()` bins the latest point cloud (or loads a recorded grid when created
  with `play_rosbag=True`), filters the grid against the previous one and
  marks landable cells in `evaluate_landing()`. `set_params` applies new
  parameters; size changes take effect on the next `run()`.
  `compute_online_mean_variance` is the running mean/variance update used for
  each point.
- `landingplanner.visualization` – `Marker` descriptions of the grid for any
  viewer: `grid_markers`, `mean_std_dev_markers`, `counter_markers`,
  `path_marker`, plus the `hsv_to_rgb` colour helper.
- `landingplanner.landing_waypoints` – `LandingWaypointGenerator`, the landing
  state machine over `SLPState` (GOTO, ALTITUDE_CHANGE, LOITER,
  EVALUATE_GRID, GOTO_LAND, LAND) driven by `Transition` results. It hands its
  setpoints to a callback given at construction.
- `landingplanner.landing_node` – `SafeLandingPlannerNode`, which takes poses
  (`on_position`), point clouds (`on_pointcloud`) or recorded grids
  (`on_raw_grid`), runs the planner in `step(now)`, applies the timeout
  failsafe reported as a `SystemState`, and serialises the grid into a
  `GridMessage`.
- `landingplanner.waypoint_node` – `WaypointGeneratorNode`, which takes pose
  (`on_position`), desired trajectory (`on_trajectory`), flight mode and
  arming (`on_state`) and grid (`on_grid`) updates, steps the landing state
  machine and emits `TrajectorySetpoint` values. `yaw_from_quaternion` is the
  helper it uses for the vehicle heading.
- `landingplanner.trajectory` – `TrajectorySimulator`, a jerk- and
  acceleration-limited simulation of the vehicle following a velocity setpoint
  towards a goal direction, configured by `SimulationLimits` and starting from
  a `SimulationState`; `norm_clamp`, `simulate_step_constant_jerk` and
  `jerk_for_velocity_setpoint` are available on their own.

## Usage

```python
from landingplanner.landing_node import SafeLandingPlannerNode
from landingplanner.waypoint_node import WaypointGeneratorNode

planner_node = SafeLandingPlannerNode()
waypoint_node = WaypointGeneratorNode(publisher=print)

planner_node.on_position((0.0, 0.0, 10.0))
planner_node.on_pointcloud([(0.5, 0.5, 0.0), (1.2, -0.3, 0.02)])
message = planner_node.step(now=1.0)  # None until a point cloud has arrived

if message is not None:
    waypoint_node.on_grid(message)
waypoint_node.on_position((0.0, 0.0, 10.0), (0.0, 0.0, 0.0, 1.0))
waypoint_node.on_state("AUTO.LAND", armed=True)
state = waypoint_node.step()  # the new SLPState, or None without a new grid
```

Simulating a trajectory:

```python
from landingplanner.trajectory import SimulationLimits, SimulationState, TrajectorySimulator

limits = SimulationLimits(
    max_z_velocity=1.0,
    min_z_velocity=-0.5,
    max_xy_velocity_norm=3.0,
    max_acceleration_norm=4.0,
    max_jerk_norm=20.0,
)
simulator = TrajectorySimulator(limits, SimulationState(velocity=(-3.0, 0.0, 0.0)))
states = simulator.generate_trajectory((1.0, 0.0, 0.0), 10.0)
```

## What the package does not do

- It does not talk to a vehicle or a message bus. Poses, point clouds,
  trajectories and flight modes are passed in by method calls, and output goes
  to the callbacks you supply (`status_publisher`, `grid_publisher`,
  `publisher`) or is returned.
- It has no timer or command of its own: the caller decides when to call
  `step`.
- It does not transform point clouds between frames; `on_pointcloud` expects
  points already in the local frame.
- Markers are plain data; nothing is drawn.

The only runtime dependency is NumPy. Tests use pytest and live in `tests/`.