# src/sessionmesh/sessions/__init__.py
"""
Session package: merging run output into descriptors and driving runs.
"""

from .divergence import common_prefix_length, detect_divergence
from .manager import RunContext, RunExecutor, RunResult, SessionManager
from .merge import SessionMergeCoordinator

__all__ = [
    "RunContext",
    "RunExecutor",
    "RunResult",
    "SessionManager",
    "SessionMergeCoordinator",
    "common_prefix_length",
    "detect_divergence",
]
