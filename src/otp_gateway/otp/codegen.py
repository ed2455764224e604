"""Numeric one-time code generation."""

import secrets
import string

DEFAULT_CODE_LENGTH = 6


def generate_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """Return *length* decimal digits from the OS CSPRNG.

    Each digit is drawn independently, so leading zeros are as likely as any
    other digit.  The result is a string and must never be treated as an int.
    """
    if length <= 0:
        raise ValueError(f"code length must be positive, got {length}")
    return "".join(secrets.choice(string.digits) for _ in range(length))
