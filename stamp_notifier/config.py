"""Stamp Notifier — Configuration Loader.

Loads and validates application configuration from config/settings.yaml.
Resolves environment variables referenced via ${VAR_NAME} syntax.
Uses frozen dataclasses for type-safe configuration access.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from stamp_notifier.utils.logger import get_logger

logger = get_logger(__name__)

# ── Path Constants ────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
SETTINGS_PATH = CONFIG_DIR / "settings.yaml"
DEPLOYED_ENV_PATH = Path("/etc/secrets/.env")

# ── Environment Variable Pattern ─────────────────────────
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)}")


# ═══════════════════════════════════════════════════════════
# Configuration Dataclasses
# ═══════════════════════════════════════════════════════════


@dataclass(frozen=True)
class AirtableConfig:
    """Connection settings for the Airtable record store."""

    api_key: str
    base_id: str
    table: str
    api_url: str = "https://api.airtable.com/v0"
    page_size: int = 100
    timeout_seconds: int = 30
    max_retries: int = 3
    requests_per_second: int = 5


@dataclass(frozen=True)
class TelegramConfig:
    """Configuration for the Telegram channel."""

    bot_token: str
    chat_id: str
    commands_enabled: bool = True


@dataclass(frozen=True)
class ScheduleConfig:
    """When the posting cycle runs and how it treats partial scans."""

    cron_minute: str = "0,10,20,30,40,50"
    run_on_startup: bool = True
    commit_on_fetch_error: bool = True


@dataclass(frozen=True)
class RelayConfig:
    """HTTP relay listener."""

    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration container."""

    airtable: AirtableConfig
    telegram: TelegramConfig
    schedule: ScheduleConfig
    relay: RelayConfig
    log_level: str = "INFO"


# ═══════════════════════════════════════════════════════════
# YAML Loading & Environment Variable Resolution
# ═══════════════════════════════════════════════════════════


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ${VAR_NAME} references in YAML values.

    Args:
        value: A string, dict, list, or primitive from parsed YAML.

    Returns:
        The same structure with all ${VAR_NAME} placeholders replaced
        by their environment variable values.

    Raises:
        ValueError: If a referenced environment variable is not set.
    """
    if isinstance(value, str):
        for var_name in ENV_VAR_PATTERN.findall(value):
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(
                    f"Environment variable '${{{var_name}}}' is required but not set. "
                    f"Add it to your .env file or export it in your shell."
                )
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load and parse a YAML file with UTF-8 encoding.

    Raises:
        FileNotFoundError: If the YAML file does not exist.
        ValueError: If the file is empty.
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        raise ValueError(f"Configuration file is empty: {path}")

    logger.debug("Loaded configuration from %s", path)
    return data


def _as_bool(value: Any) -> bool:
    """Interpret YAML booleans and env-substituted strings alike."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# ═══════════════════════════════════════════════════════════
# Dataclass Builders
# ═══════════════════════════════════════════════════════════


def _build_airtable_config(data: dict[str, Any]) -> AirtableConfig:
    """Build an AirtableConfig from the 'airtable' section."""
    _validate_keys(data, ["api_key", "base_id", "table"], "airtable")

    return AirtableConfig(
        api_key=data["api_key"],
        base_id=data["base_id"],
        table=data["table"],
        api_url=data.get("api_url", AirtableConfig.api_url).rstrip("/"),
        page_size=int(data.get("page_size", AirtableConfig.page_size)),
        timeout_seconds=int(data.get("timeout_seconds", AirtableConfig.timeout_seconds)),
        max_retries=int(data.get("max_retries", AirtableConfig.max_retries)),
        requests_per_second=int(
            data.get("requests_per_second", AirtableConfig.requests_per_second)
        ),
    )


def _build_telegram_config(data: dict[str, Any]) -> TelegramConfig:
    """Build a TelegramConfig from the 'telegram' section."""
    _validate_keys(data, ["bot_token", "chat_id"], "telegram")

    return TelegramConfig(
        bot_token=data["bot_token"],
        chat_id=str(data["chat_id"]),
        commands_enabled=_as_bool(data.get("commands_enabled", True)),
    )


def _build_schedule_config(data: dict[str, Any]) -> ScheduleConfig:
    """Build a ScheduleConfig from the optional 'schedule' section."""
    return ScheduleConfig(
        cron_minute=str(data.get("cron_minute", ScheduleConfig.cron_minute)),
        run_on_startup=_as_bool(data.get("run_on_startup", True)),
        commit_on_fetch_error=_as_bool(data.get("commit_on_fetch_error", True)),
    )


def _build_relay_config(data: dict[str, Any]) -> RelayConfig:
    """Build a RelayConfig from the optional 'relay' section.

    Raises:
        ValueError: If the port is not a valid TCP port number.
    """
    try:
        port = int(data.get("port", RelayConfig.port))
    except (TypeError, ValueError):
        raise ValueError(f"relay.port must be an integer, got {data.get('port')!r}")
    if not 0 < port < 65536:
        raise ValueError(f"relay.port out of range: {port}")

    return RelayConfig(host=str(data.get("host", RelayConfig.host)), port=port)


def _validate_keys(data: dict[str, Any], required: list[str], section: str) -> None:
    """Validate that all required keys exist in a config section.

    Raises:
        ValueError: If any required key is missing.
    """
    missing = [key for key in required if key not in data]
    if missing:
        raise ValueError(
            f"Missing required configuration keys in '{section}': {', '.join(missing)}"
        )


# ═══════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════


def default_env_path() -> Path:
    """Return the .env location for this environment.

    Deployed instances keep their secrets in /etc/secrets/.env;
    local runs read .env from the project root.
    """
    if _as_bool(os.environ.get("IS_DEPLOYED", "")):
        return DEPLOYED_ENV_PATH
    return PROJECT_ROOT / ".env"


def load_config(
    settings_path: Path | None = None,
    env_path: Path | None = None,
) -> AppConfig:
    """Load the complete application configuration.

    Args:
        settings_path: Override path to settings.yaml. Defaults to config/settings.yaml.
        env_path: Override path to the .env file.

    Returns:
        A fully validated AppConfig instance.

    Raises:
        FileNotFoundError: If the settings file is missing.
        ValueError: If required fields are missing or env vars are unset.
    """
    env_file = env_path or default_env_path()
    load_dotenv(env_file)
    logger.info("Loaded environment from %s", env_file)

    raw_settings = _load_yaml(settings_path or SETTINGS_PATH)
    settings = _resolve_env_vars(raw_settings)

    _validate_keys(settings, ["airtable", "telegram"], "settings")

    config = AppConfig(
        airtable=_build_airtable_config(settings["airtable"]),
        telegram=_build_telegram_config(settings["telegram"]),
        schedule=_build_schedule_config(settings.get("schedule") or {}),
        relay=_build_relay_config(settings.get("relay") or {}),
        log_level=str((settings.get("logging") or {}).get("level", "INFO")),
    )

    logger.info("Configuration loaded successfully")
    logger.debug("Airtable table: %s/%s", config.airtable.base_id, config.airtable.table)
    logger.debug("Cycle schedule: minute=%s", config.schedule.cron_minute)

    return config
