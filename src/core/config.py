# src/core/config.py
import math
import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 30.0
DEFAULT_QUERY_TIMEOUT_SECONDS = 3.0
DEFAULT_EDIT_TIMEOUT_SECONDS = 10.0


class ConfigError(Exception):
    """Raised when the environment cannot produce a usable configuration."""


def _first_env(*names: str) -> Optional[str]:
    """Return the first non-empty environment variable among `names`."""
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _parse_float(raw: Optional[str], name: str, default: float) -> float:
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'") from None
    # float() happily accepts "nan" and "inf"
    if not math.isfinite(value):
        raise ConfigError(f"{name} must be a finite number, got '{raw}'")
    return value


def _parse_int(raw: Optional[str], name: str, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from None


def _parse_bool(raw: Optional[str], default: bool = False) -> bool:
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BotConfig:
    discord_token: str
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    query_timeout: float = DEFAULT_QUERY_TIMEOUT_SECONDS
    edit_timeout: float = DEFAULT_EDIT_TIMEOUT_SECONDS
    db_name: str = "gorillabot.db"
    admin_role_name: str = "GorillaBot Admin"
    command_prefix: str = "!"
    skip_unchanged_edits: bool = False
    stale_after_failures: int = 0

    @classmethod
    def from_env(cls) -> "BotConfig":
        """
        Build the configuration from environment variables.
        The `GORILLA_*` names are still honoured so older deployments keep working.
        """
        token = _first_env("DISCORD_TOKEN", "GORILLA_DISCORD_TOKEN")
        if not token:
            raise ConfigError("DISCORD_TOKEN is not set")

        poll_interval = _parse_float(
            _first_env("POLL_INTERVAL_SECONDS", "GORILLA_ARMA_POLL_INTERVAL_SECONDS"),
            "POLL_INTERVAL_SECONDS",
            DEFAULT_POLL_INTERVAL_SECONDS,
        )
        query_timeout = _parse_float(
            _first_env("QUERY_TIMEOUT_SECONDS"), "QUERY_TIMEOUT_SECONDS", DEFAULT_QUERY_TIMEOUT_SECONDS
        )
        # Unset, the edit timeout shrinks with short intervals so it still fits in one tick
        edit_timeout = _parse_float(
            _first_env("EDIT_TIMEOUT_SECONDS"),
            "EDIT_TIMEOUT_SECONDS",
            min(DEFAULT_EDIT_TIMEOUT_SECONDS, poll_interval / 2),
        )
        stale_after = _parse_int(_first_env("STALE_AFTER_FAILURES"), "STALE_AFTER_FAILURES", 0)

        config = cls(
            discord_token=token,
            poll_interval=poll_interval,
            query_timeout=query_timeout,
            edit_timeout=edit_timeout,
            db_name=_first_env("DB_NAME") or "gorillabot.db",
            admin_role_name=_first_env("ADMIN_ROLE_NAME") or "GorillaBot Admin",
            command_prefix=_first_env("COMMAND_PREFIX") or "!",
            skip_unchanged_edits=_parse_bool(_first_env("SKIP_UNCHANGED_EDITS")),
            stale_after_failures=stale_after,
        )
        config.validate()
        return config

    def validate(self):
        timeouts = (
            ("POLL_INTERVAL_SECONDS", self.poll_interval),
            ("QUERY_TIMEOUT_SECONDS", self.query_timeout),
            ("EDIT_TIMEOUT_SECONDS", self.edit_timeout),
        )
        for name, value in timeouts:
            if not math.isfinite(value) or value <= 0:
                raise ConfigError(f"{name} must be a finite number greater than 0")

        # A query or an edit has to finish well inside one tick.
        for name, value in timeouts[1:]:
            if value >= self.poll_interval:
                raise ConfigError(
                    f"{name} ({value}) must be shorter than POLL_INTERVAL_SECONDS ({self.poll_interval})"
                )
        if self.stale_after_failures < 0:
            raise ConfigError("STALE_AFTER_FAILURES cannot be negative")
