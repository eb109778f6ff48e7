from __future__ import annotations

"""
Breach lookups for a user's real email.

The broker only talks to a `BreachChecker`. Checkers raise TransientError on
any failure; BreachService turns that (and timeouts, and an open breaker)
into an explicit "unknown" report. Results are never persisted.
"""

import concurrent.futures
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional, Protocol
from urllib.parse import quote

import requests
from pydantic import BaseModel, ConfigDict, Field

from sentinelid.core.circuit_breaker import BreakerConfig, BreakerState, CircuitBreaker
from sentinelid.core.errors import SentinelError, TransientError, ValidationError

MAX_EMAIL_LENGTH = 254


@dataclass(frozen=True)
class BreachResult:
    found: bool
    source: str = ""


class BreachChecker(Protocol):
    def check(self, email: str) -> BreachResult:
        """Raise TransientError when the answer cannot be determined."""


class BreachStatus(str, Enum):
    breached = "breached"
    clear = "clear"
    unknown = "unknown"


class BreachReport(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    email: str
    status: BreachStatus
    found: Optional[bool] = None
    source: str = ""
    error_code: Optional[str] = None
    message: str = ""
    checked_at: float = Field(default_factory=lambda: time.time())


class KeywordBreachChecker:
    """
    Offline stand-in: reports a breach when the email contains a keyword.
    Deterministic, so demos and tests behave the same on every run.
    """

    def __init__(self, keywords: Iterable[str] = ("breach",)):
        self.keywords: List[str] = [k.lower() for k in keywords if k]

    def check(self, email: str) -> BreachResult:
        e = email.lower()
        for k in self.keywords:
            if k in e:
                return BreachResult(found=True, source=f"keyword:{k}")
        return BreachResult(found=False, source="keyword")


class UnconfiguredBreachChecker:
    def check(self, email: str) -> BreachResult:
        raise TransientError("No breach lookup service is configured.")


class HibpBreachChecker:
    """
    Have I Been Pwned v3 `breachedaccount` lookup.
    200 -> breached (source lists breach names), 404 -> clear, else TransientError.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://haveibeenpwned.com/api/v3",
        user_agent: str = "sentinelid",
        timeout_seconds: float = 5.0,
        http: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout_seconds = float(timeout_seconds)
        self.http = http or requests.Session()

    def check(self, email: str) -> BreachResult:
        if not self.api_key:
            raise TransientError("Breach lookup API key is not set.")
        url = f"{self.base_url}/breachedaccount/{quote(email, safe='')}"
        headers = {"hibp-api-key": self.api_key, "user-agent": self.user_agent}
        try:
            r = self.http.get(url, headers=headers, params={"truncateResponse": "true"}, timeout=self.timeout_seconds)
        except requests.Timeout as e:
            raise TransientError("Breach lookup timed out.", provider="hibp") from e
        except requests.RequestException as e:
            raise TransientError("Breach lookup failed.", provider="hibp", reason=type(e).__name__) from e

        if r.status_code == 404:
            return BreachResult(found=False, source="hibp")
        if r.status_code != 200:
            raise TransientError("Breach lookup service returned an error.", provider="hibp", status=r.status_code)
        try:
            data = r.json()
        except ValueError as e:
            raise TransientError("Breach lookup returned malformed data.", provider="hibp") from e
        names = [str(x.get("Name")) for x in data if isinstance(x, dict) and x.get("Name")] if isinstance(data, list) else []
        return BreachResult(found=True, source=("hibp:" + ",".join(names)) if names else "hibp")


def normalize_email(email: Optional[str]) -> str:
    e = str(email or "").strip()
    if not e:
        raise ValidationError("Enter an email to check.")
    if len(e) > MAX_EMAIL_LENGTH:
        raise ValidationError("Email is too long.", length=len(e))
    return e


class BreachService:
    """
    Runs checks on a worker pool with a per-call timeout so a hung lookup
    never blocks the caller for longer than `timeout_seconds`.
    """

    def __init__(
        self,
        checker: BreachChecker,
        *,
        timeout_seconds: float = 5.0,
        breaker: Optional[CircuitBreaker] = None,
        breaker_cfg: Optional[BreakerConfig] = None,
        max_workers: int = 4,
        logger: Any = None,
    ):
        self.checker = checker
        self.timeout_seconds = float(timeout_seconds)
        self.breaker = breaker or CircuitBreaker(breaker_cfg or BreakerConfig(), on_state_change=self._on_breaker_change)
        self.logger = logger
        self._pool = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="breach-check")

    def _on_breaker_change(self, old: BreakerState, new: BreakerState) -> None:
        if self.logger:
            self.logger.warning(f"Breach checker breaker {old.value} -> {new.value}")

    def check(self, email: Optional[str], *, timeout_seconds: Optional[float] = None) -> BreachReport:
        e = normalize_email(email)
        if not self.breaker.allow():
            return self._unknown(e, TransientError("Breach lookups paused after repeated failures."))
        fut = self._pool.submit(self.checker.check, e)
        try:
            result = fut.result(timeout=self.timeout_seconds if timeout_seconds is None else float(timeout_seconds))
        except concurrent.futures.TimeoutError:
            fut.cancel()
            self.breaker.record_failure()
            return self._unknown(e, TransientError("Breach lookup timed out."))
        except SentinelError as err:
            self.breaker.record_failure()
            return self._unknown(e, err)
        except Exception as err:  # noqa: BLE001
            self.breaker.record_failure()
            return self._unknown(e, TransientError("Breach lookup failed.", reason=type(err).__name__))
        self.breaker.record_success()
        return BreachReport(
            email=e,
            status=BreachStatus.breached if result.found else BreachStatus.clear,
            found=bool(result.found),
            source=result.source,
        )

    def _unknown(self, email: str, err: SentinelError) -> BreachReport:
        if self.logger:
            self.logger.warning(f"Breach check unknown: {err.code} {err.user_message}")
        return BreachReport(email=email, status=BreachStatus.unknown, error_code=err.code, message=err.user_message)

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
