# Overview: Credential hashing and verification for shop users.

"""
Authentication Service

WHY: Every action must be attributable, and the device has to check
credentials even when the remote store is unreachable. Users cached in the
local snapshot therefore carry a bcrypt hash, never the plaintext secret.

SECURITY NOTES:
- Secrets hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 4 characters (cashier PINs are allowed)
- Records still carrying a plaintext "password" field are never trusted
"""

import bcrypt


MIN_SECRET_LENGTH = 4
DEFAULT_ROUNDS = 12


class SecretValidationError(Exception):
    """Raised when a password/PIN doesn't meet requirements."""
    pass


def validate_secret_strength(secret: str) -> None:
    if not isinstance(secret, str) or len(secret) < MIN_SECRET_LENGTH:
        raise SecretValidationError(f"Password must be at least {MIN_SECRET_LENGTH} characters long")


def hash_secret(secret: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a password or PIN with bcrypt after validating it."""
    validate_secret_strength(secret)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(secret.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_secret(secret: str, secret_hash: str | None) -> bool:
    """
    Verify a secret against a bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not secret or not secret_hash:
        return False
    try:
        return bcrypt.checkpw(secret.encode('utf-8'), secret_hash.encode('utf-8'))
    except ValueError:
        # Not a bcrypt hash
        return False


def identifier_matches(user: dict, identifier: str) -> bool:
    """Username or email match, case-insensitive."""
    needle = (identifier or "").strip().lower()
    if not needle:
        return False
    return needle in {
        (user.get("username") or "").strip().lower(),
        (user.get("email") or "").strip().lower(),
    }


def public_user(user: dict | None) -> dict | None:
    """User record without credential material (for API responses)."""
    if user is None:
        return None
    return {k: v for k, v in user.items() if k not in {"password", "password_hash"}}
