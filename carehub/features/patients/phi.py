"""
Encryption and lookup hashing for sensitive patient identifiers (SSN).
"""
import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from carehub.core.config import PhiSettings


class PhiCipher:
    """
    Symmetric cipher for PHI at rest.

    The Fernet key is derived from the configured encryption key and salt,
    so ciphertexts stay readable as long as both settings are unchanged.
    """

    def __init__(self, settings: PhiSettings):
        self._salt = settings.salt.encode()
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self._salt,
            iterations=100_000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(settings.encryption_key.encode()))
        self._fernet = Fernet(key)

    def encrypt(self, value: str | None) -> str | None:
        if not value:
            return None
        return self._fernet.encrypt(value.encode()).decode()

    def decrypt(self, token: str | None) -> str | None:
        """Decrypt a stored value; returns None if it cannot be read with the current key."""
        if not token:
            return None
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            return None

    def hash(self, value: str | None) -> str | None:
        """Salted SHA-256 of the digits only, for equality lookups."""
        if not value:
            return None
        digits = "".join(ch for ch in value if ch.isdigit())
        return hashlib.sha256(self._salt + digits.encode()).hexdigest()


def mask_ssn(value: str | None) -> str | None:
    """Show only the last four digits."""
    if not value:
        return None
    digits = "".join(ch for ch in value if ch.isdigit())
    return f"***-**-{digits[-4:]}"


@lru_cache(maxsize=4)
def cipher_for(settings: PhiSettings) -> PhiCipher:
    """Cached per key and salt."""
    return PhiCipher(settings)


def get_phi_cipher() -> PhiCipher:
    """Dependency returning the cipher for the environment's key material."""
    return cipher_for(PhiSettings.from_env())
