"""
Conditionally exclude assets from a project tree during a build and restore them afterwards.
"""

from .coordinator import BuildHookCoordinator, ExclusionReport, RestorationReport

__version__ = "1.0.0"

__all__ = ["BuildHookCoordinator", "ExclusionReport", "RestorationReport"]
