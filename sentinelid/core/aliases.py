from __future__ import annotations

import time
from typing import Callable, Iterable, List, Optional, Set, Tuple

from sentinelid.core.credentials import CredentialGenerator
from sentinelid.core.errors import NotFoundError, ValidationError
from sentinelid.core.state.models import Alias, BrokerState, local_part

DEFAULT_NAME = "user"
DEFAULT_DOMAIN = "example.com"
ID_ATTEMPTS = 16


def normalize_part(value: Optional[str], fallback: str) -> str:
    v = str(value or "").strip()
    return v or fallback


def unique_id(generator: CredentialGenerator, taken: Set[str]) -> str:
    for _ in range(ID_ATTEMPTS):
        candidate = generator.generate_id()
        if candidate not in taken:
            return candidate
    raise ValidationError("Unable to allocate a unique identifier.", attempts=ID_ATTEMPTS)


class AliasRegistry:
    """
    Alias transitions over a BrokerState snapshot. Methods never mutate the
    snapshot they receive; mutating calls return the next snapshot.
    """

    def __init__(
        self,
        generator: CredentialGenerator,
        *,
        default_name: str = DEFAULT_NAME,
        default_domain: str = DEFAULT_DOMAIN,
        time_fn: Callable[[], float] = time.time,
    ):
        self.generator = generator
        self.default_name = default_name
        self.default_domain = default_domain
        self._time = time_fn
        # every id issued in this process, including deleted ones
        self._issued: Set[str] = set()

    def remember(self, ids: Iterable[str]) -> None:
        self._issued.update(ids)

    def create(self, state: BrokerState, name: Optional[str], domain: Optional[str], group: Optional[str] = "") -> Tuple[BrokerState, Alias]:
        n = normalize_part(name, self.default_name)
        d = normalize_part(domain, self.default_domain)
        if not n or not d:
            raise ValidationError("Alias name and domain are required.", name=name, domain=domain)
        taken = self._issued | {a.id for a in state.aliases}
        alias = Alias(
            id=unique_id(self.generator, taken),
            name=n,
            domain=d,
            local=local_part(n, d),
            group=str(group or "").strip(),
            password=self.generator.generate_password(),
            created=self._time(),
        )
        self._issued.add(alias.id)
        return state.with_aliases([alias, *state.aliases]), alias

    def get(self, state: BrokerState, alias_id: Optional[str]) -> Optional[Alias]:
        if not alias_id:
            return None
        for a in state.aliases:
            if a.id == alias_id:
                return a
        return None

    def require(self, state: BrokerState, alias_id: str) -> Alias:
        a = self.get(state, alias_id)
        if a is None:
            raise NotFoundError("Alias not found.", alias_id=alias_id)
        return a

    def find_by_local(self, state: BrokerState, local: str) -> List[Alias]:
        target = str(local or "").strip().lower()
        return [a for a in state.aliases if a.local.lower() == target]

    def list(self, state: BrokerState) -> List[Alias]:
        return list(state.aliases)

    def delete(self, state: BrokerState, alias_id: str) -> BrokerState:
        self.require(state, alias_id)
        return state.with_aliases([a for a in state.aliases if a.id != alias_id])
