"""Salted one-way hashing of user passwords.

Stored values have the form ``<salt>:<derivedKey>`` where both halves are
base64 text. The salt is 32 random bytes, base64-encoded, and the encoded
*string* is what is fed to PBKDF2 as salt. Derivation is PBKDF2-HMAC-SHA512
with a 64-byte key.
"""

import base64
import hmac
import secrets

from beartype import beartype
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ...logging_utils import get_logger
from .errors import InvalidCredential

logger = get_logger(__name__)

SALT_BYTES = 32
KEY_LENGTH = 64
DEFAULT_ITERATIONS = 624
SEPARATOR = ":"


class CredentialHasher:
    """PBKDF2-SHA512 password hasher."""

    @beartype
    def __init__(self, iterations: int = DEFAULT_ITERATIONS) -> None:
        """Initialize hasher.

        Args:
            iterations: PBKDF2 iteration count
        """
        if iterations < 1:
            raise ValueError("iterations must be positive")
        self._iterations = iterations

    @property
    def iterations(self) -> int:
        """PBKDF2 iteration count."""
        return self._iterations

    @beartype
    def _derive(self, plain: str, salt: str) -> str:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=KEY_LENGTH,
            salt=salt.encode("utf-8"),
            iterations=self._iterations,
        )
        key = kdf.derive(plain.encode("utf-8"))
        return base64.b64encode(key).decode("ascii")

    @beartype
    def hash(self, plain: str | None) -> str:
        """Hash a plaintext password for storage.

        Args:
            plain: Plaintext password

        Returns:
            ``salt:derivedKey`` string

        Raises:
            InvalidCredential: If the password is empty
        """
        if not plain:
            raise InvalidCredential("Password must not be empty")

        salt = base64.b64encode(secrets.token_bytes(SALT_BYTES)).decode("ascii")
        return f"{salt}{SEPARATOR}{self._derive(plain, salt)}"

    @beartype
    def verify(self, stored: str, plain: str | None) -> bool:
        """Check a candidate password against a stored hash.

        Malformed stored values and empty candidates never verify.
        """
        if not plain or not stored:
            return False

        salt, sep, expected = stored.partition(SEPARATOR)
        if not sep or not salt or not expected or SEPARATOR in expected:
            logger.warning("Malformed stored credential hash")
            return False

        candidate = self._derive(plain, salt)
        return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))
