"""
API Routers package.
"""

from . import choices, dynamic, story

__all__ = ["choices", "dynamic", "story"]
