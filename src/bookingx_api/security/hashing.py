"""Secret hashing, token digests and random credential generation.

- Client secrets and API keys: bcrypt (salted, cost embedded in the hash,
  constant-time check).
- Codes and tokens: SHA-256 digest, so a leaked table cannot be replayed.
"""

import hashlib
import hmac
import secrets

import bcrypt

__all__ = [
    "constant_time_equals",
    "digest_token",
    "generate_token",
    "hash_secret",
    "verify_secret",
]

# bcrypt only looks at the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


def hash_secret(secret: str, rounds: int = 12) -> str:
    """Return a self-describing bcrypt hash of *secret*."""
    raw = secret.encode()
    if len(raw) > _BCRYPT_MAX_BYTES:
        raise ValueError("secret longer than 72 bytes cannot be bcrypt hashed")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=rounds)).decode()


def verify_secret(secret: str, hashed: str) -> bool:
    """Check *secret* against a bcrypt hash. Malformed input is a mismatch."""
    raw = secret.encode()
    if not raw or len(raw) > _BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(raw, hashed.encode())
    except ValueError:
        return False


def digest_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def generate_token(prefix: str = "", nbytes: int = 32) -> str:
    """Random hex token; 32 bytes gives 256 bits of entropy."""
    return f"{prefix}{secrets.token_hex(nbytes)}"


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())
