from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..events.matcher import TopicSyntax

log = logging.getLogger(__name__)

ErrorPolicy = Literal["log", "raise"]
_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class BusConfig(BaseModel):
    """Message bus behaviour.

    Notes:
    - error_policy="log": subscriber failures are logged (and reported on
      error_channel if set); publish() never raises for them.
    - error_policy="raise": failures are still isolated, then raised together
      as DispatchError once every matched subscriber has run.
    """

    delimiter: str = "."
    single_wildcard: str = "*"
    multi_wildcard: str = "#"
    default_channel: str = "default"

    error_policy: ErrorPolicy = "log"
    error_channel: Optional[str] = None

    # verify payloads are plain data at publish time
    strict_payloads: bool = False

    @model_validator(mode="after")
    def _check_tokens(self) -> "BusConfig":
        tokens = (self.delimiter, self.single_wildcard, self.multi_wildcard)
        if any(not t for t in tokens):
            raise ValueError("delimiter and wildcard tokens must be non-empty")
        if len(set(tokens)) != len(tokens):
            raise ValueError("delimiter and wildcard tokens must be distinct")
        for t in (self.single_wildcard, self.multi_wildcard):
            if self.delimiter in t:
                raise ValueError(f"wildcard {t!r} must not contain the delimiter")
        if not self.default_channel:
            raise ValueError("default_channel must be non-empty")
        return self

    def syntax(self) -> TopicSyntax:
        return TopicSyntax(delimiter=self.delimiter, single=self.single_wildcard, multi=self.multi_wildcard)


class HubConfig(BaseModel):
    """Runtime configuration loaded from file + env overrides."""

    log_level: str = "INFO"
    bus: BusConfig = Field(default_factory=BusConfig)

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LEVELS:
            raise ValueError(f"unknown log level {v!r}")
        return level


_TRUTHY = ("1", "true", "yes", "on")


class ConfigManager:
    """Load configuration from a JSON file with environment overrides.

    - default < config file < environment variables
    - a missing or corrupted file falls back to defaults (logged)
    - invalid override values are skipped; never crash on config issues
    """

    def __init__(self, path: Optional[str | Path] = None) -> None:
        self.path = Path(path) if path is not None else None

    def _config_path(self) -> Optional[Path]:
        if self.path is not None:
            return self.path
        raw = os.getenv("TOPIC_HUB_CONFIG_PATH", "").strip()
        return Path(raw) if raw else None

    def _read_file(self, cfg_path: Optional[Path]) -> dict:
        if cfg_path is None:
            return {}
        if not cfg_path.exists():
            log.warning("config file %s not found, using defaults", cfg_path)
            return {}
        try:
            data = json.loads(cfg_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.warning("config file %s unreadable (%s), using defaults", cfg_path, e)
            return {}
        if not isinstance(data, dict):
            log.warning("config file %s is not a JSON object, using defaults", cfg_path)
            return {}
        return data

    def _env_overrides(self) -> list[tuple[str, Optional[str], str, object]]:
        """(env name, section, key, value) for every override that is set."""
        out: list[tuple[str, Optional[str], str, object]] = []
        if os.getenv("TOPIC_HUB_LOG_LEVEL"):
            out.append(("TOPIC_HUB_LOG_LEVEL", None, "log_level", os.getenv("TOPIC_HUB_LOG_LEVEL", "").strip()))
        for env, key in (
            ("TOPIC_HUB_DELIMITER", "delimiter"),
            ("TOPIC_HUB_DEFAULT_CHANNEL", "default_channel"),
            ("TOPIC_HUB_ERROR_CHANNEL", "error_channel"),
        ):
            if os.getenv(env):
                out.append((env, "bus", key, os.getenv(env)))
        if os.getenv("TOPIC_HUB_ERROR_POLICY"):
            out.append(("TOPIC_HUB_ERROR_POLICY", "bus", "error_policy", os.getenv("TOPIC_HUB_ERROR_POLICY", "").strip().lower()))
        if os.getenv("TOPIC_HUB_STRICT_PAYLOADS") is not None:
            strict = os.getenv("TOPIC_HUB_STRICT_PAYLOADS", "").strip().lower() in _TRUTHY
            out.append(("TOPIC_HUB_STRICT_PAYLOADS", "bus", "strict_payloads", strict))
        return out

    def load(self) -> HubConfig:
        data = self._read_file(self._config_path())
        try:
            cfg = HubConfig.model_validate(data)
        except ValidationError as e:
            log.warning("invalid config file (%d errors), using defaults", e.error_count())
            cfg = HubConfig()

        # env overrides are applied one by one; a bad value only drops itself
        for env, section, key, value in self._env_overrides():
            candidate = cfg.model_dump()
            if section is None:
                candidate[key] = value
            else:
                candidate[section][key] = value
            try:
                cfg = HubConfig.model_validate(candidate)
            except ValidationError:
                log.warning("ignoring invalid %s=%r", env, value)
        return cfg
