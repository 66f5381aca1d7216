"""Credential verification for electronic signatures."""

from typing import Protocol

import bcrypt


class CredentialVerifier(Protocol):
    def verify(self, plaintext: str, stored_hash: str) -> bool: ...


class BcryptVerifier:
    """Checks a re-entered password against the stored bcrypt hash."""

    def verify(self, plaintext: str, stored_hash: str) -> bool:
        if not plaintext or not stored_hash:
            return False
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), stored_hash.encode("utf-8"))
        except ValueError:
            # Not a bcrypt hash.
            return False


def hash_password(password: str) -> str:
    """Hash a password for storage (seeding and tests)."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
