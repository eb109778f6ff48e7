from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from sentinelid.core.errors import PersistenceError
from sentinelid.core.state.cipher import CipherError, PasswordCipher
from sentinelid.core.state.io import (
    StatePaths,
    atomic_write_json,
    ensure_dirs,
    quarantine_corrupt,
    read_json,
    write_last_known_good,
)
from sentinelid.core.state.models import BrokerState


@dataclass(frozen=True)
class StateLoadResult:
    state: BrokerState
    warning: Optional[str] = None
    recovered: bool = False


class StateStore:
    """
    Durable copy of the broker state as a single JSON document.

    save(): atomic replace, previous snapshot kept in backups/, copy kept as
    last_known_good. load(): never raises; missing -> empty state, corrupt ->
    quarantined and replaced by last_known_good (or empty) with a warning.
    """

    def __init__(self, paths: StatePaths, *, backup_keep: int = 20, cipher: Optional[PasswordCipher] = None, logger: Any = None):
        self.paths = paths
        self.backup_keep = int(backup_keep)
        self.cipher = cipher
        self.logger = logger

    @property
    def encrypted(self) -> bool:
        return self.cipher is not None

    def available(self) -> bool:
        try:
            ensure_dirs(self.paths)
        except OSError:
            return False
        return os.access(self.paths.state_dir, os.W_OK)

    # ---- load ----
    def load(self) -> StateLoadResult:
        ok, data, err = read_json(self.paths.state_path)
        if not ok and err == "missing":
            return StateLoadResult(state=BrokerState())
        if ok:
            state, err = self._decode(data)
            if state is not None:
                return StateLoadResult(state=state)

        warning = f"State file unusable ({err}); "
        quarantined = quarantine_corrupt(self.paths)
        lkg_ok, lkg_data, _ = read_json(self.paths.last_known_good_path)
        state = None
        if lkg_ok:
            state, _ = self._decode(lkg_data)
        if state is not None:
            warning += "restored last known good snapshot."
            try:
                self._write(state)
            except PersistenceError as e:
                warning += f" Re-writing it failed: {e.user_message}"
        else:
            warning += "starting with empty state."
        if self.logger:
            self.logger.warning(f"{warning} quarantined={quarantined}")
        return StateLoadResult(state=state or BrokerState(), warning=warning, recovered=state is not None)

    def _decode(self, data: dict) -> tuple[Optional[BrokerState], Optional[str]]:
        try:
            if self.cipher is not None:
                data = self.cipher.open_document(data)
            return BrokerState.model_validate(data), None
        except CipherError as e:
            return None, f"decrypt_failed:{e}"
        except PydanticValidationError as e:
            return None, f"schema_invalid:{e.error_count()} errors"
        except (TypeError, AttributeError) as e:
            return None, f"schema_invalid:{type(e).__name__}"

    # ---- save ----
    def save(self, state: BrokerState) -> None:
        self._write(state)
        write_last_known_good(self.paths)

    def _write(self, state: BrokerState) -> None:
        try:
            doc = state.to_document()
            if self.cipher is not None:
                doc = self.cipher.seal_document(doc)
            atomic_write_json(self.paths.state_path, doc, backups_dir=self.paths.backups_dir, keep=self.backup_keep)
        except (OSError, TypeError, ValueError) as e:
            if self.logger:
                self.logger.error(f"State save failed: {e}")
            raise PersistenceError(path=self.paths.state_path, reason=str(e)) from e
