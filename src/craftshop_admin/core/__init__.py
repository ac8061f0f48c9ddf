"""Core infrastructure components for the craftshop admin backend."""

from .config import get_settings
from .database import Database

__all__ = ["get_settings", "Database"]
