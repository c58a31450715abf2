"""
auth/codes.py -- One-time code and opaque token generation.

Both values gate account access, so they come from the `secrets` CSPRNG.
random.randint() would be predictable from a handful of observed outputs.
"""

import secrets

OTP_MIN = 1000
OTP_MAX = 9999


def generate_otp() -> int:
    """Return a 4-digit code drawn uniformly from [1000, 9999]."""
    return OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1)


def generate_opaque_token() -> str:
    """Return a single-use token for reset links.

    secrets.token_hex(32) gives 256 bits of entropy as 64 hex chars, safe to
    embed in a URL path without escaping.
    """
    return secrets.token_hex(32)
