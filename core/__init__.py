"""Core utilities and configuration for the venue catalog"""
from core.config import settings
from core.exceptions import NotFoundError, ValidationError, VenueCatalogError
from core.logging import get_logger

__all__ = [
    "settings",
    "get_logger",
    "VenueCatalogError",
    "ValidationError",
    "NotFoundError",
]
