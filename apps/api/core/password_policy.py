"""
Password policy for email/password registration.

Rules: 8-72 characters (bcrypt limit), at least one letter and one digit,
and not on the common-password blocklist.
"""
import re
from typing import Tuple, List

COMMON_PASSWORDS = {
    "password", "password1", "password123", "12345678", "123456789", "1234567890",
    "qwerty123", "abc12345", "letmein1", "welcome1", "iloveyou1", "football1",
    "passw0rd", "p@ssw0rd", "trustno1", "sunshine1", "princess1", "baseball1",
    "repz1234", "repzrepz1", "gains123", "workout1", "fitness1", "gymrat123",
}


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """Return (is_valid, errors) for a candidate password."""
    errors = []

    if len(password) < 8:
        errors.append("Password must be at least 8 characters")

    if len(password) > 72:
        errors.append("Password must not exceed 72 characters")

    if not re.search(r'[A-Za-z]', password):
        errors.append("Password must contain at least one letter")

    if not re.search(r'\d', password):
        errors.append("Password must contain at least one digit")

    if password.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common, please choose a stronger password")

    return len(errors) == 0, errors
