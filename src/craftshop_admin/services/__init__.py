"""Service layer."""

from .account_service import AccountService
from .bootstrap import Bootstrapper, BootstrapReport, bootstrap_from_settings
from .credential_store import CredentialStore, PostgresCredentialStore
from .memory_store import InMemoryCredentialStore

__all__ = [
    "AccountService",
    "BootstrapReport",
    "Bootstrapper",
    "CredentialStore",
    "InMemoryCredentialStore",
    "PostgresCredentialStore",
    "bootstrap_from_settings",
]
