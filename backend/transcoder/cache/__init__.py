"""
Progress cache: best-effort, short-TTL projection of job status.
"""

from .progress import (
    CacheBackendError,
    InMemoryProgressCache,
    NullProgressCache,
    ProgressCache,
    ProgressSnapshot,
    cache_key,
)

__all__ = [
    "CacheBackendError",
    "InMemoryProgressCache",
    "NullProgressCache",
    "ProgressCache",
    "ProgressSnapshot",
    "cache_key",
]
