"""Core package"""
from mtfoundry.core.config import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
