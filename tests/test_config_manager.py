from __future__ import annotations

import json
import os

import pytest
from pydantic import ValidationError as PydanticValidationError

from sentinelid.core.bootstrap import build_breach_checker, build_broker
from sentinelid.core.breach import HibpBreachChecker, KeywordBreachChecker, UnconfiguredBreachChecker
from sentinelid.core.config import HIBP_API_KEY_ENV, ConfigManager, ConfigPaths, SentinelConfig
from sentinelid.core.config.models import BreachConfig, CredentialsConfig, StateConfig
from sentinelid.core.errors import ConfigError
from .helpers.fakes import ListLogger


def test_missing_config_is_created_with_defaults(tmp_path):
    paths = ConfigPaths(root=str(tmp_path))
    cfg = ConfigManager(paths=paths, logger=ListLogger()).load()
    assert cfg == SentinelConfig()
    with open(paths.config_path, encoding="utf-8") as f:
        assert json.load(f)["credentials"]["default_password_length"] == 16


def test_read_only_does_not_write(tmp_path):
    paths = ConfigPaths(root=str(tmp_path))
    cm = ConfigManager(paths=paths, read_only=True)
    cm.load()
    assert not os.path.exists(paths.config_path)
    with pytest.raises(ConfigError):
        cm.save(SentinelConfig())


def test_corrupt_config_is_quarantined(tmp_path):
    paths = ConfigPaths(root=str(tmp_path))
    os.makedirs(paths.config_dir, exist_ok=True)
    with open(paths.config_path, "w", encoding="utf-8") as f:
        f.write("{not json")
    log = ListLogger()
    cfg = ConfigManager(paths=paths, logger=log).load()
    assert cfg == SentinelConfig()
    assert any("corrupt" in b for b in os.listdir(paths.backups_dir))
    assert log.messages("warning")


def test_unknown_keys_are_rejected(tmp_path):
    paths = ConfigPaths(root=str(tmp_path))
    os.makedirs(paths.config_dir, exist_ok=True)
    doc = SentinelConfig().model_dump()
    doc["breach"]["unknown_field"] = 1
    with open(paths.config_path, "w", encoding="utf-8") as f:
        json.dump(doc, f)
    with pytest.raises(ConfigError) as ei:
        ConfigManager(paths=paths).load()
    assert ei.value.code == "config_error"


def test_save_round_trips(tmp_path):
    paths = ConfigPaths(root=str(tmp_path))
    cm = ConfigManager(paths=paths)
    cm.load()
    cfg = SentinelConfig(state=StateConfig(backup_keep=3))
    cm.save(cfg)
    assert ConfigManager(paths=paths).load() == cfg


@pytest.mark.parametrize(
    "kw",
    [
        {"min_password_length": 20, "max_password_length": 10, "default_password_length": 16},
        {"default_password_length": 200},
        {"min_password_length": 8, "default_password_length": 6},
    ],
)
def test_credential_bounds_are_validated(kw):
    with pytest.raises(PydanticValidationError):
        CredentialsConfig(**kw)


def test_hibp_key_comes_from_environment(tmp_path, monkeypatch):
    cm = ConfigManager(paths=ConfigPaths(root=str(tmp_path)))
    monkeypatch.delenv(HIBP_API_KEY_ENV, raising=False)
    assert cm.hibp_api_key() == ""
    monkeypatch.setenv(HIBP_API_KEY_ENV, " abc ")
    assert cm.hibp_api_key() == "abc"


def test_breach_provider_selection():
    assert isinstance(build_breach_checker(SentinelConfig()), KeywordBreachChecker)
    hibp = build_breach_checker(SentinelConfig(breach=BreachConfig(provider="hibp")), api_key="k")
    assert isinstance(hibp, HibpBreachChecker) and hibp.api_key == "k"
    assert isinstance(build_breach_checker(SentinelConfig(breach=BreachConfig(provider="none"))), UnconfiguredBreachChecker)


def test_relative_paths_resolve_under_root(tmp_path):
    paths = ConfigPaths(root=str(tmp_path))
    cfg = SentinelConfig(state=StateConfig(encrypt_passwords=True))
    b = build_broker(cfg, paths=paths)
    try:
        assert b.store.paths.state_dir == os.path.join(str(tmp_path), "state")
        assert b.store.encrypted
        assert os.path.exists(os.path.join(str(tmp_path), "secure", "state.key"))
    finally:
        b.close()


def test_bad_key_file_is_a_config_error(tmp_path):
    paths = ConfigPaths(root=str(tmp_path))
    key = os.path.join(str(tmp_path), "secure", "state.key")
    os.makedirs(os.path.dirname(key))
    with open(key, "wb") as f:
        f.write(b"short")
    with pytest.raises(ConfigError):
        build_broker(SentinelConfig(state=StateConfig(encrypt_passwords=True)), paths=paths)
