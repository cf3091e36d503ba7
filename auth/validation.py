"""
auth/validation.py -- Input rules for registration and password changes.

The service validates here rather than relying on the Pydantic request models,
so the same rules hold for the HTTP API, the admin CLI, and direct callers.
Every failing field is collected and reported at once in ValidationError.details.
"""

from __future__ import annotations

import re

from auth.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")

PASSWORD_MIN_LENGTH = 6
# bcrypt only looks at the first 72 bytes and current releases refuse longer input.
PASSWORD_MAX_BYTES = 72


def normalize_email(email: str) -> str:
    return email.strip().lower()


def email_error(email: str | None) -> str | None:
    if not email or not EMAIL_PATTERN.match(email.strip()):
        return "Please provide a valid email"
    return None


def password_error(password: str | None) -> str | None:
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return f"Password must not exceed {PASSWORD_MAX_BYTES} bytes"
    if not (
        any(c.islower() for c in password) and any(c.isupper() for c in password) and any(c.isdigit() for c in password)
    ):
        return "Password must contain at least one uppercase letter, one lowercase letter, and one number"
    return None


def validate_password(password: str | None) -> None:
    error = password_error(password)
    if error:
        raise ValidationError(details={"password": error})


def validate_registration(
    email: str | None,
    password: str | None,
    full_name: str | None,
    spiritual_name: str | None = None,
    phone: str | None = None,
    introduction: str | None = None,
) -> None:
    """Raise ValidationError listing every invalid registration field."""
    errors: dict[str, str] = {}

    if msg := email_error(email):
        errors["email"] = msg
    if msg := password_error(password):
        errors["password"] = msg
    name = (full_name or "").strip()
    if not 2 <= len(name) <= 100:
        errors["fullName"] = "Full name must be between 2 and 100 characters"
    if spiritual_name is not None and len(spiritual_name.strip()) > 100:
        errors["spiritualName"] = "Spiritual name must not exceed 100 characters"
    if phone is not None and phone.strip() and not PHONE_PATTERN.match(phone.strip()):
        errors["phone"] = "Please provide a valid phone number"
    if introduction is not None and len(introduction) > 1000:
        errors["introduction"] = "Introduction must not exceed 1000 characters"

    if errors:
        raise ValidationError(details=errors)
