from __future__ import annotations

"""
Password and identifier generation.

All security-bearing output comes from the OS CSPRNG (`secrets.SystemRandom`).
When the OS source is missing a seeded `random.Random` is used instead and
`crypto_available` reports False; callers that cannot accept that set
`require_crypto=True` and get `CryptoUnavailableError`.
"""

import os
import random
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sentinelid.core.errors import CryptoUnavailableError, ValidationError

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()-_=+[]{}<>?~"

CHARSET_CLASSES: Dict[str, str] = {
    "lowercase": LOWERCASE,
    "uppercase": UPPERCASE,
    "digits": DIGITS,
    "symbols": SYMBOLS,
}
PASSWORD_ALPHABET = "".join(CHARSET_CLASSES.values())
ID_ALPHABET = string.digits + string.ascii_lowercase  # base-36

DEFAULT_PASSWORD_LENGTH = 16
MIN_PASSWORD_LENGTH = 4
MAX_PASSWORD_LENGTH = 128
DEFAULT_ID_LENGTH = 8
MAX_ID_LENGTH = 64


def _os_random_available() -> bool:
    try:
        os.urandom(1)
        return True
    except NotImplementedError:
        return False


@dataclass
class CredentialPolicy:
    default_password_length: int = DEFAULT_PASSWORD_LENGTH
    min_password_length: int = MIN_PASSWORD_LENGTH
    max_password_length: int = MAX_PASSWORD_LENGTH
    id_length: int = DEFAULT_ID_LENGTH
    require_crypto: bool = False


class CredentialGenerator:
    def __init__(self, policy: Optional[CredentialPolicy] = None, *, rng: Optional[random.Random] = None, logger: Any = None):
        self.policy = policy or CredentialPolicy()
        self.logger = logger
        if rng is not None:
            self._rng = rng
            self.crypto_available = isinstance(rng, random.SystemRandom)
        elif _os_random_available():
            self._rng = secrets.SystemRandom()
            self.crypto_available = True
        else:
            self._rng = random.Random()
            self.crypto_available = False
        if not self.crypto_available and self.logger:
            self.logger.warning("CSPRNG unavailable: credentials use a non-cryptographic generator.")

    def _check_crypto(self) -> None:
        if self.policy.require_crypto and not self.crypto_available:
            raise CryptoUnavailableError()

    def validate_password_length(self, length: Any) -> int:
        if isinstance(length, bool) or not isinstance(length, int):
            raise ValidationError("Password length must be an integer.", length=repr(length))
        lo, hi = int(self.policy.min_password_length), int(self.policy.max_password_length)
        if length < lo or length > hi:
            raise ValidationError(f"Password length must be between {lo} and {hi}.", length=length)
        return length

    def generate_password(self, length: Optional[int] = None) -> str:
        n = self.validate_password_length(self.policy.default_password_length if length is None else length)
        self._check_crypto()
        return "".join(self._rng.choice(PASSWORD_ALPHABET) for _ in range(n))

    def generate_id(self, length: Optional[int] = None) -> str:
        n = self.policy.id_length if length is None else length
        if isinstance(n, bool) or not isinstance(n, int) or n < 1 or n > MAX_ID_LENGTH:
            raise ValidationError(f"Identifier length must be between 1 and {MAX_ID_LENGTH}.", length=repr(n))
        self._check_crypto()
        return "".join(self._rng.choice(ID_ALPHABET) for _ in range(n))


def charset_classes_in(password: str) -> set[str]:
    return {name for name, chars in CHARSET_CLASSES.items() if any(c in chars for c in password)}
