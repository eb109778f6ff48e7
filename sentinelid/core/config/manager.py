from __future__ import annotations

import os
import shutil
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from sentinelid.core.config.models import SentinelConfig
from sentinelid.core.errors import ConfigError
from sentinelid.core.state.io import atomic_write_json, read_json

HIBP_API_KEY_ENV = "SENTINELID_HIBP_API_KEY"


@dataclass(frozen=True)
class ConfigPaths:
    root: str = "."

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def config_path(self) -> str:
        return os.path.join(self.config_dir, "sentinelid.json")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    def resolve(self, path: str) -> str:
        """Relative paths inside the config are taken relative to `root`."""
        return path if os.path.isabs(path) else os.path.join(self.root, path)


class ConfigManager:
    def __init__(self, *, paths: Optional[ConfigPaths] = None, logger: Any = None, read_only: bool = False):
        self.paths = paths or ConfigPaths(".")
        self.logger = logger
        self.read_only = read_only
        self._cfg: Optional[SentinelConfig] = None

    def load(self) -> SentinelConfig:
        ok, raw, err = read_json(self.paths.config_path)
        if not ok:
            if err == "missing":
                if self.logger:
                    self.logger.warning(f"Missing config {self.paths.config_path}; creating defaults.")
            else:
                self._quarantine(err)
            raw = SentinelConfig().model_dump()
            if not self.read_only:
                self._write(raw)
        try:
            cfg = SentinelConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigError("Invalid configuration.", path=self.paths.config_path, errors=e.errors(include_url=False)) from e
        self._cfg = cfg
        return cfg

    def get(self) -> SentinelConfig:
        if self._cfg is None:
            return self.load()
        return self._cfg

    def save(self, cfg: SentinelConfig) -> None:
        if self.read_only:
            raise ConfigError("Config is read-only.")
        self._write(cfg.model_dump())
        self._cfg = cfg

    def hibp_api_key(self) -> str:
        return os.environ.get(HIBP_API_KEY_ENV, "").strip()

    def _quarantine(self, err: Optional[str]) -> None:
        os.makedirs(self.paths.backups_dir, exist_ok=True)
        ts = time.strftime("%Y%m%d_%H%M%S", time.gmtime())
        dst = os.path.join(self.paths.backups_dir, f"sentinelid.json.{ts}.corrupt.json")
        try:
            shutil.move(self.paths.config_path, dst)
        except OSError:
            dst = "<not moved>"
        if self.logger:
            self.logger.warning(f"Corrupt config ({err}) moved to {dst}; using defaults.")

    def _write(self, data: Dict[str, Any]) -> None:
        try:
            atomic_write_json(self.paths.config_path, data, backups_dir=self.paths.backups_dir, keep=10, prefix="sentinelid.json")
        except OSError as e:
            raise ConfigError("Unable to write configuration.", path=self.paths.config_path, reason=str(e)) from e
