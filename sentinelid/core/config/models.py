from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sentinelid.core.credentials import MAX_ID_LENGTH, MAX_PASSWORD_LENGTH, MIN_PASSWORD_LENGTH


class StateConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    state_dir: str = "state"
    backup_keep: int = Field(default=20, ge=0, le=200)
    encrypt_passwords: bool = False
    key_path: str = "secure/state.key"


class CredentialsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    default_password_length: int = Field(default=16, ge=MIN_PASSWORD_LENGTH, le=MAX_PASSWORD_LENGTH)
    min_password_length: int = Field(default=MIN_PASSWORD_LENGTH, ge=1, le=MAX_PASSWORD_LENGTH)
    max_password_length: int = Field(default=MAX_PASSWORD_LENGTH, ge=1, le=1024)
    id_length: int = Field(default=8, ge=4, le=MAX_ID_LENGTH)
    require_crypto: bool = False

    @model_validator(mode="after")
    def _bounds(self) -> "CredentialsConfig":
        if self.min_password_length > self.max_password_length:
            raise ValueError("min_password_length must not exceed max_password_length")
        if not (self.min_password_length <= self.default_password_length <= self.max_password_length):
            raise ValueError("default_password_length must be within [min, max]")
        return self


class AliasesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    default_name: str = Field(default="user", min_length=1, max_length=64)
    default_domain: str = Field(default="example.com", min_length=1, max_length=253)
    delete_policy: Literal["detach", "reject"] = "detach"


class BreachConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    provider: Literal["keyword", "hibp", "none"] = "keyword"
    keywords: List[str] = Field(default_factory=lambda: ["breach"])
    base_url: str = "https://haveibeenpwned.com/api/v3"
    user_agent: str = "sentinelid"
    timeout_seconds: float = Field(default=5.0, gt=0, le=60)
    max_workers: int = Field(default=4, ge=1, le=32)
    breaker_failures: int = Field(default=3, ge=1, le=100)
    breaker_window_seconds: int = Field(default=60, ge=1, le=3600)
    breaker_cooldown_seconds: int = Field(default=30, ge=1, le=3600)


class WebConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    bind_host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class SentinelConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    config_version: int = Field(default=1, ge=1)
    state: StateConfig = Field(default_factory=StateConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    aliases: AliasesConfig = Field(default_factory=AliasesConfig)
    breach: BreachConfig = Field(default_factory=BreachConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
