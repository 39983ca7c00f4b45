"""
StockERP Security Utilities
Version: 1.0.0
Author: StockERP Development Team
License: MIT

Password hashing for user records.
"""

import hashlib
import re
import secrets
from typing import List, Tuple

PBKDF2_ITERATIONS = 100000


class PasswordManager:
    """Password management utilities."""

    def __init__(self, min_length: int = 8, require_digits: bool = True, require_letters: bool = True):
        self.min_length = min_length
        self.require_digits = require_digits
        self.require_letters = require_letters

    def validate_password_strength(self, password: str) -> Tuple[bool, List[str]]:
        """Validate password strength according to configuration."""
        errors = []

        if len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters long")

        if self.require_letters and not re.search(r'[A-Za-z]', password):
            errors.append("Password must contain at least one letter")

        if self.require_digits and not re.search(r'\d', password):
            errors.append("Password must contain at least one number")

        return len(errors) == 0, errors

    def hash_password(self, password: str) -> str:
        """Hash a password with a random salt using PBKDF2-SHA256."""
        salt = secrets.token_hex(16)
        hashed = hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt.encode('utf-8'), PBKDF2_ITERATIONS)
        return f"{salt}:{hashed.hex()}"

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash."""
        salt, separator, stored_hash = password_hash.partition(':')
        if not separator:
            return False

        computed_hash = hashlib.pbkdf2_hmac(
            'sha256', password.encode('utf-8'), salt.encode('utf-8'), PBKDF2_ITERATIONS
        )
        return secrets.compare_digest(computed_hash.hex(), stored_hash)
