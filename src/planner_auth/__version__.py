"""Version information for planner-auth."""

__version__ = "0.1.0"
