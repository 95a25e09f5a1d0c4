"""Verification code generation, hashing and comparison."""

import hashlib
import hmac
import secrets

CODE_MIN = 100000
CODE_MAX = 999999


def generate_code() -> str:
    """Return a random 6-digit code in [100000, 999999].

    The leading digit is never zero, so the code survives being treated as
    an integer by clients.
    """
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def hash_code(code: str) -> str:
    """SHA-256 hex digest of a code."""
    return hashlib.sha256(code.encode()).hexdigest()


def constant_time_equal(hash_a: str, hash_b: str) -> bool:
    """Compare two digests without short-circuiting on the first mismatch.

    Returns False instead of raising for mismatched lengths or non-ASCII
    input.
    """
    if not isinstance(hash_a, str) or not isinstance(hash_b, str):
        return False
    try:
        a = hash_a.encode("ascii")
        b = hash_b.encode("ascii")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(a, b)
