"""
Read-only monitoring: progress polling, job listing, stats and downloads.
"""

from .server import router

__all__ = ["router"]
