"""
Version 1 routes.
"""

from . import cache, executions, health, projects

__all__ = ["cache", "executions", "health", "projects"]
