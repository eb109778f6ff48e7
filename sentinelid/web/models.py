from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sentinelid.core.state.models import Alias


class AliasCreateRequest(BaseModel):
    name: str = Field(default="", max_length=64)
    domain: str = Field(default="", max_length=253)
    group: str = Field(default="", max_length=64)


class AliasSummary(BaseModel):
    """List view: no credential."""

    id: str
    name: str
    domain: str
    local: str
    group: str
    created: float

    @classmethod
    def of(cls, a: Alias) -> "AliasSummary":
        return cls(id=a.id, name=a.name, domain=a.domain, local=a.local, group=a.group, created=a.created)


class AliasListResponse(BaseModel):
    aliases: List[AliasSummary]


class AliasDeleteResponse(BaseModel):
    deleted: str
    detached_sessions: List[str]


class SessionCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    site: str = Field(max_length=2048)
    alias_id: Optional[str] = Field(default=None, alias="aliasId", max_length=64)


class PasswordRequest(BaseModel):
    length: Optional[int] = None


class PasswordResponse(BaseModel):
    password: str
    length: int


class BreachCheckRequest(BaseModel):
    email: str = Field(max_length=512)
