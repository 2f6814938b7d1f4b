"""
Secret generation and digests for one-time sign-in codes.
"""

import hashlib
import secrets


def generate_numeric_code(length: int = 6) -> str:
    """
    Generate a cryptographically secure numeric code.

    Args:
        length: Number of digits

    Returns:
        Zero-padded digit string, e.g. "004217"
    """
    return str(secrets.randbelow(10 ** length)).zfill(length)


def hash_credential(email: str, code: str) -> str:
    """
    One-way digest binding a code to the normalized email it was sent to.

    Args:
        email: Normalized email address
        code: Plain code as delivered to the user

    Returns:
        Hex-encoded SHA-256 digest of "<email>|<code>"
    """
    return hashlib.sha256(f"{email}|{code}".encode("utf-8")).hexdigest()
