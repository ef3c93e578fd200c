"""
SolarScope REST API.

Usage:
    uvicorn solarscope.api.main:app --reload

    # Or with the CLI
    solarscope serve
"""

from .main import app

__all__ = ["app"]
