from __future__ import annotations

"""
IdentityBroker: single entry point for alias/session lifecycle.

Write path: take the writer lock, let a registry compute the next snapshot,
persist it, then swap it in. If persistence fails the swap never happens, so
memory and disk cannot diverge. Readers grab the current snapshot reference
without locking; snapshots are never mutated after they are published.
"""

import os
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from sentinelid.core.aliases import AliasRegistry
from sentinelid.core.breach import BreachReport, BreachService
from sentinelid.core.credentials import CredentialGenerator
from sentinelid.core.errors import PersistenceError, ReferentialIntegrityError, SentinelError
from sentinelid.core.events import EventLogger
from sentinelid.core.sessions import SessionRegistry
from sentinelid.core.state.io import atomic_write_json
from sentinelid.core.state.models import Alias, BrokerState, OpenToken, Session
from sentinelid.core.state.store import StateStore

DELETE_POLICIES = ("detach", "reject")


@dataclass(frozen=True)
class BrokerFeatures:
    crypto_available: bool
    storage_available: bool
    storage_encrypted: bool
    breach_checker: str
    alias_delete_policy: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "crypto_available": self.crypto_available,
            "storage_available": self.storage_available,
            "storage_encrypted": self.storage_encrypted,
            "breach_checker": self.breach_checker,
            "alias_delete_policy": self.alias_delete_policy,
        }


class IdentityBroker:
    def __init__(
        self,
        *,
        store: StateStore,
        generator: CredentialGenerator,
        breach: BreachService,
        aliases: Optional[AliasRegistry] = None,
        sessions: Optional[SessionRegistry] = None,
        event_logger: Optional[EventLogger] = None,
        alias_delete_policy: str = "detach",
        logger: Any = None,
    ):
        if alias_delete_policy not in DELETE_POLICIES:
            raise ValueError(f"alias_delete_policy must be one of {DELETE_POLICIES}")
        self.store = store
        self.generator = generator
        self.breach = breach
        self.aliases = aliases or AliasRegistry(generator)
        self.sessions = sessions or SessionRegistry(generator, self.aliases)
        self.event_logger = event_logger
        self.alias_delete_policy = alias_delete_policy
        self.logger = logger

        self._write_lock = threading.Lock()
        self._state = BrokerState()
        self._loaded = False
        self.load_warning: Optional[str] = None

    # ---- lifecycle ----
    def start(self) -> "IdentityBroker":
        with self._write_lock:
            self._load_locked()
        if self.logger:
            self.logger.info(f"Identity broker started: {len(self._state.aliases)} aliases, {len(self._state.sessions)} sessions.")
        return self

    def reload(self) -> Optional[str]:
        """Re-read the durable snapshot; returns the load warning, if any."""
        with self._write_lock:
            self._load_locked()
        return self.load_warning

    def close(self) -> None:
        self.breach.close()
        if self.logger:
            self.logger.info("Identity broker stopped.")

    def __enter__(self) -> "IdentityBroker":
        return self.start()

    def __exit__(self, *_exc: Any) -> None:
        self.close()

    def _load_locked(self) -> None:
        res = self.store.load()
        self._state = res.state
        self._loaded = True
        self.load_warning = res.warning
        self.aliases.remember(a.id for a in res.state.aliases)
        self.sessions.remember(s.id for s in res.state.sessions)

    # ---- internals ----
    def _current(self) -> BrokerState:
        # unstarted brokers load on first use
        if not self._loaded:
            with self._write_lock:
                if not self._loaded:
                    self._load_locked()
        return self._state

    def _commit(self, event: str, mutate: Callable[[BrokerState], Tuple[BrokerState, Any]], details: Callable[[Any], Dict[str, Any]]) -> Any:
        trace_id = uuid.uuid4().hex
        with self._write_lock:
            if not self._loaded:
                self._load_locked()
            new_state, result = mutate(self._state)
            if new_state is not self._state:
                try:
                    self.store.save(new_state)
                except SentinelError as e:
                    if self.logger:
                        self.logger.error(f"{event} rolled back: {e.user_message} (trace_id={trace_id})")
                    raise
                self._state = new_state
        if self.event_logger is not None:
            try:
                self.event_logger.log(trace_id, event, details(result))
            except OSError as e:
                if self.logger:
                    self.logger.warning(f"Audit log write failed for {event}: {e}")
        return result

    # ---- aliases ----
    def create_alias(self, name: Optional[str], domain: Optional[str], group: Optional[str] = "") -> Alias:
        return self._commit(
            "alias.created",
            lambda st: self.aliases.create(st, name, domain, group),
            lambda a: {"alias_id": a.id, "local": a.local, "group": a.group},
        )

    def list_aliases(self) -> List[Alias]:
        return self.aliases.list(self._current())

    def get_alias(self, alias_id: str) -> Alias:
        return self.aliases.require(self._current(), alias_id)

    def find_aliases(self, local: str) -> List[Alias]:
        return self.aliases.find_by_local(self._current(), local)

    def delete_alias(self, alias_id: str) -> List[Session]:
        """
        Remove an alias. Sessions that referenced it keep their `alias_local`
        snapshot and lose `alias_id` ("detach"), or the delete is refused
        with ReferentialIntegrityError ("reject"). Returns the detached sessions.
        """

        def _mutate(st: BrokerState) -> Tuple[BrokerState, List[Session]]:
            self.aliases.require(st, alias_id)
            refs = self.sessions.referencing(st, alias_id)
            if refs and self.alias_delete_policy == "reject":
                raise ReferentialIntegrityError(
                    "Alias is still used by a session.", alias_id=alias_id, session_ids=[s.id for s in refs]
                )
            nxt = self.sessions.detach_alias(self.aliases.delete(st, alias_id), alias_id)
            return nxt, [s for s in nxt.sessions if s.id in {r.id for r in refs}]

        return self._commit("alias.deleted", _mutate, lambda detached: {"alias_id": alias_id, "detached_sessions": [s.id for s in detached]})

    # ---- sessions ----
    def create_session(self, site: Optional[str], alias_id: Optional[str] = None) -> Session:
        return self._commit(
            "session.created",
            lambda st: self.sessions.create(st, site, alias_id),
            lambda s: {"session_id": s.id, "site": s.site, "alias_id": s.alias_id, "ephemeral": s.is_ephemeral},
        )

    def list_sessions(self) -> List[Session]:
        return self.sessions.list(self._current())

    def get_session(self, session_id: str) -> Session:
        return self.sessions.require(self._current(), session_id)

    def destroy_session(self, session_id: str) -> None:
        self._commit(
            "session.destroyed",
            lambda st: (self.sessions.destroy(st, session_id), None),
            lambda _r: {"session_id": session_id},
        )

    def open_session(self, session_id: str) -> OpenToken:
        return self.sessions.open(self._current(), session_id)

    # ---- credentials / breach ----
    def generate_password(self, length: Optional[int] = None) -> str:
        return self.generator.generate_password(length)

    def check_email_breach(self, email: Optional[str], *, timeout_seconds: Optional[float] = None) -> BreachReport:
        # runs outside the writer lock; never touches alias/session state
        return self.breach.check(email, timeout_seconds=timeout_seconds)

    def export(self, path: str) -> None:
        """
        Write a plaintext copy of the current snapshot (passwords included).
        Reads memory only; the state directory is not touched.
        """
        try:
            atomic_write_json(path, self._current().to_document(), backups_dir=os.path.dirname(path) or ".", keep=0)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError("Unable to write export.", path=path, reason=str(e)) from e

    def features(self) -> BrokerFeatures:
        return BrokerFeatures(
            crypto_available=bool(self.generator.crypto_available),
            storage_available=self.store.available(),
            storage_encrypted=self.store.encrypted,
            breach_checker=type(self.breach.checker).__name__,
            alias_delete_policy=self.alias_delete_policy,
        )
