"""Fernet helpers backing the encrypted BVN/NIN columns."""

from __future__ import annotations

import base64
from functools import lru_cache

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from loandesk.core.settings import settings


_DEV_KDF_SALT = "loandesk-fernet-dev-salt-v1"


def _kdf_salt(secret: str) -> bytes:
    configured = (settings.fernet_kdf_salt or "").strip()
    if configured:
        return configured.encode("utf-8")
    # Production settings validation requires FERNET_KDF_SALT.
    return f"{_DEV_KDF_SALT}:{secret[:16]}".encode("utf-8")


@lru_cache(maxsize=16)
def _fernet_for_secret(secret: str) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_kdf_salt(secret),
        iterations=max(100_000, settings.fernet_kdf_iterations),
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8"))))


def get_fernet(*, secret: str | None = None) -> Fernet:
    return _fernet_for_secret(secret or settings.secret_key)


def mask_identifier(value: str | None, visible: int = 4) -> str | None:
    """Mask all but the trailing ``visible`` characters of a sensitive identifier."""
    if not value:
        return value
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
