"""Password hashing and strength validation (bcrypt)."""

import hashlib
import re
from dataclasses import dataclass, field
from typing import List

import bcrypt


@dataclass
class PasswordValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)


class PasswordService:
    """bcrypt hashing plus a minimal strength policy"""

    def __init__(self, min_length: int = 8):
        self.min_length = min_length

    def validate(self, password: str) -> PasswordValidation:
        errors = []
        if not password or len(password) < self.min_length:
            errors.append(f"must be at least {self.min_length} characters")
        if password and not re.search(r"[A-Za-z]", password):
            errors.append("must contain a letter")
        if password and not re.search(r"\d", password):
            errors.append("must contain a digit")
        return PasswordValidation(valid=not errors, errors=errors)

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt()
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, hashed_password: str) -> bool:
        if not password or not hashed_password:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False


def hash_token(token: str) -> str:
    """SHA-256 digest used to store reset, verification and MFA codes"""
    return hashlib.sha256(token.encode()).hexdigest()
