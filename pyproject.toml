[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "landingplanner"
version = "0.1.0"
description = "Safe landing area detection, landing waypoint generation and jerk-limited trajectory simulation for multicopters"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "drone",
    "uav",
    "landing",
    "planning",
    "point cloud",
    "trajectory",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["landingplanner"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
