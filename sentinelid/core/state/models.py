from __future__ import annotations

import time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

EPHEMERAL_LOCAL = "(ephemeral)"
STATE_VERSION = 1


def local_part(name: str, domain: str) -> str:
    return f"{name}@{domain}"


class Alias(BaseModel):
    # unknown fields from newer snapshots are ignored on read
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    domain: str = Field(min_length=1)
    local: str = Field(min_length=3)
    group: str = ""
    password: str = Field(min_length=1)
    created: float = Field(default_factory=lambda: time.time())


class Session(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    site: str = Field(min_length=1)
    alias_id: Optional[str] = Field(default=None, alias="aliasId")
    alias_local: str = Field(default=EPHEMERAL_LOCAL, alias="aliasLocal")
    created: float = Field(default_factory=lambda: time.time())

    @property
    def is_ephemeral(self) -> bool:
        return self.alias_id is None


class OpenToken(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    session_id: str
    site: str
    alias_local: str
    token: str
    route: str
    issued_at: float = Field(default_factory=lambda: time.time())


class BrokerState(BaseModel):
    """
    Aggregate root. Snapshots are values: transitions build a new instance
    and never mutate the lists of an existing one.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    state_version: int = Field(default=STATE_VERSION, ge=1)
    aliases: List[Alias] = Field(default_factory=list)
    sessions: List[Session] = Field(default_factory=list)

    def with_aliases(self, aliases: List[Alias]) -> "BrokerState":
        return self.model_copy(update={"aliases": list(aliases)})

    def with_sessions(self, sessions: List[Session]) -> "BrokerState":
        return self.model_copy(update={"sessions": list(sessions)})

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
