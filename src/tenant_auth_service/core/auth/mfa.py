"""Second-factor helpers

RFC 6238 TOTP generation/verification and one-time numeric codes for
email-delivered factors.
"""

import base64
import hashlib
import hmac
import secrets
import time
from typing import Optional
from urllib.parse import quote

TOTP_INTERVAL = 30
TOTP_DIGITS = 6


def generate_totp_secret(length: int = 20) -> str:
    """Random base32 secret (unpadded) for authenticator apps"""
    return base64.b32encode(secrets.token_bytes(length)).decode("utf-8").rstrip("=")


def build_otpauth_uri(secret: str, account: str, issuer: str) -> str:
    label = quote(f"{issuer}:{account}")
    return f"otpauth://totp/{label}?secret={secret}&issuer={quote(issuer)}"


def generate_totp(secret: str, timestamp: Optional[float] = None, interval: int = TOTP_INTERVAL) -> str:
    """Compute the TOTP code for a timestamp (empty string for a malformed secret)"""
    if timestamp is None:
        timestamp = time.time()
    padded = secret + "=" * ((8 - len(secret) % 8) % 8)
    try:
        key = base64.b32decode(padded, casefold=True)
    except ValueError:
        return ""

    counter = int(timestamp // interval).to_bytes(8, "big")
    digest = hmac.new(key, counter, hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code = (int.from_bytes(digest[offset:offset + 4], "big") & 0x7FFFFFFF) % (10 ** TOTP_DIGITS)
    return str(code).zfill(TOTP_DIGITS)


def verify_totp(secret: str, code: str, window: int = 1, interval: int = TOTP_INTERVAL) -> bool:
    """Check a code against the current step and `window` adjacent steps"""
    if not secret or not code:
        return False
    now = time.time()
    for step in range(-window, window + 1):
        expected = generate_totp(secret, now + step * interval, interval)
        if expected and hmac.compare_digest(expected, code):
            return True
    return False


def generate_numeric_code(digits: int = 6) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(digits))


def mask_email(email: str) -> str:
    """al***@example.com"""
    local, _, domain = email.partition("@")
    return f"{local[:2]}{'*' * max(len(local) - 2, 1)}@{domain}"
