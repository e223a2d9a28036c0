from __future__ import annotations

import hashlib
import hmac
import os
from typing import Iterable, Optional

from .models import Account

_ITERATIONS = 200_000


def hash_password(password: str, *, salt: Optional[bytes] = None, iterations: int = _ITERATIONS) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``."""
    salt = salt if salt is not None else os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"pbkdf2_sha256${iterations}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algo, iterations, salt_hex, digest_hex = encoded.split("$")
        if algo != "pbkdf2_sha256":
            return False
        salt = bytes.fromhex(salt_hex)
        rounds = int(iterations)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", (password or "").encode("utf-8"), salt, rounds)
    return hmac.compare_digest(digest.hex(), digest_hex)


def find_account(accounts: Iterable[Account], email: str) -> Optional[Account]:
    wanted = (email or "").strip().lower()
    if not wanted:
        return None
    for acc in accounts:
        if acc.user.email.lower() == wanted:
            return acc
    return None
