from __future__ import annotations

import time
from typing import Callable, Iterable, List, Optional, Set, Tuple

from sentinelid.core.aliases import AliasRegistry, unique_id
from sentinelid.core.credentials import CredentialGenerator
from sentinelid.core.errors import NotFoundError, ValidationError
from sentinelid.core.state.models import EPHEMERAL_LOCAL, BrokerState, OpenToken, Session

OPEN_TOKEN_LENGTH = 32


class SessionRegistry:
    """
    Virtual session transitions. A session snapshots its alias's local part
    at creation; later alias deletion only clears `alias_id`.
    """

    def __init__(self, generator: CredentialGenerator, aliases: AliasRegistry, *, time_fn: Callable[[], float] = time.time):
        self.generator = generator
        self.aliases = aliases
        self._time = time_fn
        self._issued: Set[str] = set()

    def remember(self, ids: Iterable[str]) -> None:
        self._issued.update(ids)

    def create(self, state: BrokerState, site: Optional[str], alias_id: Optional[str] = None) -> Tuple[BrokerState, Session]:
        s = str(site or "").strip()
        if not s:
            raise ValidationError("Enter a site to create a session.", site=site)
        # unknown alias ids degrade to an ephemeral session
        alias = self.aliases.get(state, alias_id)
        taken = self._issued | {x.id for x in state.sessions}
        session = Session(
            id=unique_id(self.generator, taken),
            site=s,
            alias_id=alias.id if alias is not None else None,
            alias_local=alias.local if alias is not None else EPHEMERAL_LOCAL,
            created=self._time(),
        )
        self._issued.add(session.id)
        return state.with_sessions([session, *state.sessions]), session

    def get(self, state: BrokerState, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        for x in state.sessions:
            if x.id == session_id:
                return x
        return None

    def require(self, state: BrokerState, session_id: str) -> Session:
        x = self.get(state, session_id)
        if x is None:
            raise NotFoundError("Session not found.", session_id=session_id)
        return x

    def list(self, state: BrokerState) -> List[Session]:
        return list(state.sessions)

    def referencing(self, state: BrokerState, alias_id: str) -> List[Session]:
        return [x for x in state.sessions if x.alias_id == alias_id]

    def detach_alias(self, state: BrokerState, alias_id: str) -> BrokerState:
        if not self.referencing(state, alias_id):
            return state
        return state.with_sessions([x.model_copy(update={"alias_id": None}) if x.alias_id == alias_id else x for x in state.sessions])

    def destroy(self, state: BrokerState, session_id: str) -> BrokerState:
        self.require(state, session_id)
        return state.with_sessions([x for x in state.sessions if x.id != session_id])

    def open(self, state: BrokerState, session_id: str) -> OpenToken:
        """
        Hand out a routing token for the session. Nothing is launched; an
        isolating proxy or browser context would consume `route`.
        """
        x = self.require(state, session_id)
        return OpenToken(
            session_id=x.id,
            site=x.site,
            alias_local=x.alias_local,
            token=self.generator.generate_id(OPEN_TOKEN_LENGTH),
            route=f"virtual://{x.id}",
            issued_at=self._time(),
        )
