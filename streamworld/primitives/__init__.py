"""
StreamWorld — Shared Primitives
"""

from streamworld.primitives.common import SWBaseModel, new_id, utc_now

__all__ = ["SWBaseModel", "new_id", "utc_now"]
