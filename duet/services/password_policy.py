# File: duet/services/password_policy.py

"""
Password acceptance policy.

Pure functions only: no I/O, no exceptions for bad input. An empty or
otherwise malformed password is reported as a violation so the caller can
show every problem at once.
"""

import enum
import re
from dataclasses import dataclass, field
from typing import List, Optional

from duet.core.config import PasswordPolicy


class ViolationKind(str, enum.Enum):
    EMPTY = "empty"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    MISSING_UPPERCASE = "missing_uppercase"
    MISSING_LOWERCASE = "missing_lowercase"
    MISSING_DIGIT = "missing_digit"
    MISSING_SYMBOL = "missing_symbol"
    COMMON_PASSWORD = "common_password"


# Small built-in list; compared case-insensitively.
COMMON_PASSWORDS = frozenset(
    {
        "password", "password1", "password123", "passw0rd", "p@ssw0rd", "p@ssword1",
        "123456", "1234567", "12345678", "123456789", "1234567890", "12345",
        "qwerty", "qwerty123", "qwertyuiop", "abc123", "abcd1234", "111111",
        "123123", "654321", "000000", "iloveyou", "iloveyou1", "letmein",
        "letmein1", "welcome", "welcome1", "welcome123", "monkey", "dragon",
        "baseball", "football", "sunshine", "princess", "shadow", "superman",
        "master", "master123", "trustno1", "admin", "admin123", "login",
        "qazwsx", "starwars", "whatever", "freedom", "changeme", "secret",
        "loveyou", "lovelove", "mylove", "sweetheart", "babygirl", "honey123",
    }
)


@dataclass(frozen=True)
class PolicyResult:
    accepted: bool
    violations: List[ViolationKind] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)

    @property
    def codes(self) -> List[str]:
        return [v.value for v in self.violations]


def _message(kind: ViolationKind, policy: PasswordPolicy) -> str:
    if kind is ViolationKind.EMPTY:
        return "Password must not be empty"
    if kind is ViolationKind.TOO_SHORT:
        return f"Password must be at least {policy.min_length} characters long"
    if kind is ViolationKind.TOO_LONG:
        return f"Password must be at most {policy.max_length} characters long"
    if kind is ViolationKind.MISSING_UPPERCASE:
        return "Password must contain at least one uppercase letter"
    if kind is ViolationKind.MISSING_LOWERCASE:
        return "Password must contain at least one lowercase letter"
    if kind is ViolationKind.MISSING_DIGIT:
        return "Password must contain at least one digit"
    if kind is ViolationKind.MISSING_SYMBOL:
        return f"Password must contain at least one special character from: {policy.symbols}"
    return "Password is too common, please choose another one"


def evaluate(candidate: Optional[str], policy: Optional[PasswordPolicy] = None) -> PolicyResult:
    """
    Check ``candidate`` against every rule of ``policy``.

    Violations are returned in rule order; ``accepted`` is True only when
    the list is empty.
    """
    policy = policy or PasswordPolicy()
    password = candidate if isinstance(candidate, str) else ""
    violations: List[ViolationKind] = []

    if not password:
        violations.append(ViolationKind.EMPTY)

    if len(password) < policy.min_length:
        violations.append(ViolationKind.TOO_SHORT)

    if len(password) > policy.max_length:
        violations.append(ViolationKind.TOO_LONG)

    if policy.require_upper and not re.search(r"[A-Z]", password):
        violations.append(ViolationKind.MISSING_UPPERCASE)

    if policy.require_lower and not re.search(r"[a-z]", password):
        violations.append(ViolationKind.MISSING_LOWERCASE)

    if policy.require_digit and not re.search(r"[0-9]", password):
        violations.append(ViolationKind.MISSING_DIGIT)

    if policy.require_symbol and not any(ch in policy.symbols for ch in password):
        violations.append(ViolationKind.MISSING_SYMBOL)

    if policy.reject_common and password and password.lower() in COMMON_PASSWORDS:
        violations.append(ViolationKind.COMMON_PASSWORD)

    return PolicyResult(
        accepted=not violations,
        violations=violations,
        messages=[_message(v, policy) for v in violations],
    )
