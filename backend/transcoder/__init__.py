"""
Transcoder: queue-driven media transcoding job pipeline.
"""

__version__ = "0.1.0"
