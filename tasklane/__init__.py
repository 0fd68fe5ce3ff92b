"""tasklane - multi-user daily task planner core."""

__version__ = "0.1.0"
