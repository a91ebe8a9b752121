"""
StreamWorld — Telemetry
"""

from streamworld.telemetry.logging import setup_logging

__all__ = ["setup_logging"]
