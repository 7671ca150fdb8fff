# src/sessionmesh/history/__init__.py
"""
History package: lazy, ordered reconstruction of session history.
"""

from .assembler import HistoryAssembler, HistoryStream, LazyHistory

__all__ = ["HistoryAssembler", "HistoryStream", "LazyHistory"]
