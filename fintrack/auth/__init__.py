"""Account security helpers."""

from fintrack.auth.password_policy import (
    MIN_PASSWORD_LENGTH,
    PasswordRequirement,
    PasswordStrength,
    evaluate_password,
)

__all__ = [
    "MIN_PASSWORD_LENGTH",
    "PasswordRequirement",
    "PasswordStrength",
    "evaluate_password",
]
