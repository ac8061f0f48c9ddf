"""Domain models."""

from .auth import Client, TokenPair, User, UserCredential, UserToken
from .base import BaseModelConfig

__all__ = [
    "BaseModelConfig",
    "Client",
    "TokenPair",
    "User",
    "UserCredential",
    "UserToken",
]
