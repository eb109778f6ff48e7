from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from sentinelid.core.events import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class SentinelError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return f"{self.code}: {self.user_message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Core types ----
class ValidationError(SentinelError):
    def __init__(self, user_message: str = "Invalid request.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class NotFoundError(SentinelError):
    def __init__(self, user_message: str = "Not found.", **ctx: Any):
        super().__init__("not_found", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class ReferentialIntegrityError(SentinelError):
    def __init__(self, user_message: str = "Record is still referenced.", **ctx: Any):
        super().__init__("referential_integrity", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class PersistenceError(SentinelError):
    def __init__(self, user_message: str = "Unable to save state.", **ctx: Any):
        super().__init__("persistence_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class TransientError(SentinelError):
    def __init__(self, user_message: str = "External service unavailable.", **ctx: Any):
        super().__init__("transient_error", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class CryptoUnavailableError(SentinelError):
    def __init__(self, user_message: str = "Secure randomness is unavailable.", **ctx: Any):
        super().__init__("crypto_unavailable", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class ConfigError(SentinelError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)
