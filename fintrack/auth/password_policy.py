"""
Password Policy

Sign-up passwords are scored against five requirements; the score is
the share that pass. Anything short of all five is rejected.
"""

import re
from typing import Callable

from pydantic import BaseModel, Field


class PasswordRequirement(BaseModel):
    label: str
    passed: bool


class PasswordStrength(BaseModel):
    requirements: list[PasswordRequirement] = Field(default_factory=list)

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.requirements if r.passed)

    @property
    def score(self) -> float:
        """0.0 to 1.0."""
        if not self.requirements:
            return 0.0
        return self.passed_count / len(self.requirements)

    @property
    def label(self) -> str:
        if self.score < 0.4:
            return "Weak"
        if self.score < 0.8:
            return "Medium"
        return "Strong"

    @property
    def is_acceptable(self) -> bool:
        return self.passed_count == len(self.requirements)

    @property
    def missing(self) -> list[str]:
        return [r.label for r in self.requirements if not r.passed]


MIN_PASSWORD_LENGTH = 12

_SPECIAL = re.compile(r'[!@#$%^&*(),.?":{}|<>]')

REQUIREMENTS: list[tuple[str, Callable[[str], bool]]] = [
    (f"At least {MIN_PASSWORD_LENGTH} characters", lambda p: len(p) >= MIN_PASSWORD_LENGTH),
    ("One uppercase letter", lambda p: re.search(r"[A-Z]", p) is not None),
    ("One lowercase letter", lambda p: re.search(r"[a-z]", p) is not None),
    ("One number", lambda p: re.search(r"[0-9]", p) is not None),
    ("One special character (!@#$%^&*)", lambda p: _SPECIAL.search(p) is not None),
]


def evaluate_password(password: str) -> PasswordStrength:
    return PasswordStrength(requirements=[
        PasswordRequirement(label=label, passed=check(password))
        for label, check in REQUIREMENTS
    ])
