"""
Password hashing with bcrypt.

bcrypt salts every hash and its comparison is constant-time with respect
to the outcome. The work factor comes from ``config.BCRYPT_ROUNDS`` and is
read on every call so tests can lower it.
"""
import bcrypt

from app.core import config
from app.core.errors import ValidationError

# bcrypt ignores (newer releases reject) input beyond 72 bytes
MAX_PASSWORD_BYTES = 72


def check_password_policy(password: str | None, field: str = "password") -> str:
    """
    Enforce the password policy before anything is written.

    Raises:
        ValidationError: If the password is missing, shorter than
            MIN_PASSWORD_LENGTH or longer than 72 bytes.
    """
    if not password or len(password) < config.MIN_PASSWORD_LENGTH:
        raise ValidationError(field, f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(field, f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return password


def hash_password(password: str) -> str:
    """Hash a plain password with a fresh salt."""
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError("password", f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """
    Compare a plain password against a stored bcrypt hash.

    Returns False (never raises) for malformed hashes or over-long input.
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Compared against when an email is unknown so that lookups for missing
# and existing accounts cost the same.
_DUMMY_HASH: str | None = None


def dummy_hash() -> str:
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_password("not-a-real-password")
    return _DUMMY_HASH
