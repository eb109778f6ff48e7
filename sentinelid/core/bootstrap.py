from __future__ import annotations

import os
from typing import Any, Optional

from sentinelid.core.aliases import AliasRegistry
from sentinelid.core.breach import (
    BreachChecker,
    BreachService,
    HibpBreachChecker,
    KeywordBreachChecker,
    UnconfiguredBreachChecker,
)
from sentinelid.core.broker import IdentityBroker
from sentinelid.core.circuit_breaker import BreakerConfig
from sentinelid.core.config import ConfigPaths, SentinelConfig
from sentinelid.core.credentials import CredentialGenerator, CredentialPolicy
from sentinelid.core.errors import ConfigError
from sentinelid.core.events import EventLogger
from sentinelid.core.sessions import SessionRegistry
from sentinelid.core.state.cipher import CipherError, PasswordCipher
from sentinelid.core.state.io import StatePaths
from sentinelid.core.state.store import StateStore


def build_breach_checker(cfg: SentinelConfig, *, api_key: str = "") -> BreachChecker:
    b = cfg.breach
    if b.provider == "hibp":
        return HibpBreachChecker(api_key=api_key, base_url=b.base_url, user_agent=b.user_agent, timeout_seconds=b.timeout_seconds)
    if b.provider == "keyword":
        return KeywordBreachChecker(b.keywords)
    return UnconfiguredBreachChecker()


def build_broker(
    cfg: SentinelConfig,
    *,
    paths: Optional[ConfigPaths] = None,
    logger: Any = None,
    checker: Optional[BreachChecker] = None,
    api_key: str = "",
) -> IdentityBroker:
    """Wire an (unstarted) broker from validated config."""
    paths = paths or ConfigPaths(".")
    c = cfg.credentials
    generator = CredentialGenerator(
        CredentialPolicy(
            default_password_length=c.default_password_length,
            min_password_length=c.min_password_length,
            max_password_length=c.max_password_length,
            id_length=c.id_length,
            require_crypto=c.require_crypto,
        ),
        logger=logger,
    )
    cipher = None
    if cfg.state.encrypt_passwords:
        key_path = paths.resolve(cfg.state.key_path)
        try:
            cipher = PasswordCipher.from_key_file(key_path)
        except (CipherError, OSError) as e:
            raise ConfigError("State encryption key is unusable.", key_path=key_path, reason=str(e)) from e
    store = StateStore(
        StatePaths(state_dir=paths.resolve(cfg.state.state_dir)),
        backup_keep=cfg.state.backup_keep,
        cipher=cipher,
        logger=logger,
    )
    b = cfg.breach
    breach = BreachService(
        checker or build_breach_checker(cfg, api_key=api_key),
        timeout_seconds=b.timeout_seconds,
        breaker_cfg=BreakerConfig(failures=b.breaker_failures, window_seconds=b.breaker_window_seconds, cooldown_seconds=b.breaker_cooldown_seconds),
        max_workers=b.max_workers,
        logger=logger,
    )
    aliases = AliasRegistry(generator, default_name=cfg.aliases.default_name, default_domain=cfg.aliases.default_domain)
    return IdentityBroker(
        store=store,
        generator=generator,
        breach=breach,
        aliases=aliases,
        sessions=SessionRegistry(generator, aliases),
        event_logger=EventLogger(os.path.join(paths.resolve(cfg.logging.log_dir), "events.jsonl")),
        alias_delete_policy=cfg.aliases.delete_policy,
        logger=logger,
    )

