# src/sessionmesh/resolution/__init__.py
"""
Resolution package: turning content references into content.
"""

from .cache import ResolutionCache, reference_key
from .fetcher import BaseFetcher, FetchResult, HttpFetcher
from .resolver import ResourceResolver

__all__ = [
    "BaseFetcher",
    "FetchResult",
    "HttpFetcher",
    "ResolutionCache",
    "ResourceResolver",
    "reference_key",
]
