"""Safe landing area detection, landing waypoints and trajectory simulation."""

__version__ = "0.1.0"

__all__ = [
    "grid",
    "landing_node",
    "landing_waypoints",
    "planner",
    "trajectory",
    "visualization",
    "waypoint_node",
]