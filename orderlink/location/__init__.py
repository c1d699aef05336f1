"""
Agent location tracking.
"""

from .models import LocationSample, now_ms

__all__ = ["LocationSample", "now_ms"]
