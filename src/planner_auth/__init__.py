"""
planner-auth: authorization, sessions and permission resolution for the
team planner.
"""

from .__version__ import __version__

__all__ = ["__version__"]
