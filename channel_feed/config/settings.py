"""Application settings with Pydantic Settings validation.

Secrets (bot token, database password) are loaded from the environment or .env.
Non-sensitive configuration is loaded from config/*.yaml files.
All configs are merged and validated against JSON schemas when available.
"""

import json
from pathlib import Path
from typing import Any, Final, Literal, cast

import yaml
from jsonschema import ValidationError as JSONSchemaValidationError
from jsonschema import validate
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from channel_feed.config.logging_config import get_logger
from channel_feed.domain.feed_constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MAX_ROWS_PER_PAGE,
    MEDIA_CACHE_TTL_SECONDS,
    ROW_FANOUT_FACTOR,
)

CONFIG_DIR: Final[Path] = Path("config")
SCHEMA_DIR: Final[Path] = CONFIG_DIR / "schemas"

POSTGRES_MIN_CONNECTIONS_DEFAULT: Final[int] = 1
POSTGRES_MAX_CONNECTIONS_DEFAULT: Final[int] = 10
POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT: Final[int] = 10
POSTGRES_APPLICATION_NAME_DEFAULT: Final[str] = "channel_feed"

TELEGRAM_HTTP_TIMEOUT_SECONDS_DEFAULT: Final[float] = 10.0

logger = cast(Any, get_logger(__name__))


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge into base (takes precedence)

    Returns:
        Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_schema(schema_name: str, schema_dir: Path = SCHEMA_DIR) -> dict[str, Any]:
    """Load JSON Schema for a config file.

    Args:
        schema_name: Schema name without extension (e.g., "main")
        schema_dir: Directory holding ``<name>.schema.json`` files

    Returns:
        JSON Schema dictionary or empty dict if not found
    """
    schema_path = schema_dir / f"{schema_name}.schema.json"
    if not schema_path.exists():
        return {}

    try:
        with open(schema_path, encoding="utf-8") as f:
            return cast(dict[str, Any], json.load(f))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(
            "config_schema_load_failed",
            schema=schema_name,
            error=str(e),
        )
        return {}


def validate_config_section(
    config: dict[str, Any],
    schema_name: str,
    file_path: str = "",
    schema_dir: Path = SCHEMA_DIR,
) -> None:
    """Validate config section against JSON Schema.

    Raises:
        ValueError: If validation fails
    """
    schema = load_schema(schema_name, schema_dir)
    if not schema:
        return

    try:
        validate(instance=config, schema=schema)
        logger.debug("config_validation_succeeded", schema=schema_name)
    except JSONSchemaValidationError as e:
        error_msg = f"Config validation failed for {schema_name}"
        if file_path:
            error_msg += f" (file: {file_path})"
        error_msg += f": {e.message}"
        raise ValueError(error_msg) from e


def load_all_configs(config_dir: Path = CONFIG_DIR) -> dict[str, Any]:
    """Load and merge all YAML configs from the config directory.

    Loading order (later overrides earlier):
    1. main.yaml
    2. All other *.yaml files (sorted alphabetically)

    Returns:
        Merged configuration dictionary
    """
    merged_config: dict[str, Any] = {}
    if not config_dir.exists() or not config_dir.is_dir():
        return merged_config

    schema_dir = config_dir / "schemas"
    yaml_files = sorted(
        config_dir.glob("*.yaml"), key=lambda f: (f.name != "main.yaml", f.name)
    )

    for yaml_file in yaml_files:
        schema_name = yaml_file.stem
        try:
            with open(yaml_file, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning(
                "config_file_load_failed",
                path=str(yaml_file),
                error=str(e),
            )
            continue

        try:
            validate_config_section(file_config, schema_name, str(yaml_file), schema_dir)
        except ValueError as e:
            logger.error(
                "config_validation_failed",
                path=str(yaml_file),
                schema=schema_name,
                error=str(e),
            )
            raise

        merged_config = deep_merge(merged_config, file_config)
        logger.debug("config_file_loaded", path=str(yaml_file), schema=schema_name)

    logger.info("config_load_complete", file_count=len(yaml_files))
    return merged_config


class Settings(BaseSettings):
    """Application settings.

    Secrets are loaded from the environment / .env file.
    Non-sensitive config is loaded from config/*.yaml with fallback to defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === SECRETS (from .env) ===

    telegram_bot_token: SecretStr | None = Field(
        default=None,
        description="Telegram Bot API token; media URLs and live stats need it",
    )
    postgres_password: SecretStr | None = Field(
        default=None, description="PostgreSQL password (from .env, optional)"
    )

    # === NON-SENSITIVE CONFIG (from config/*.yaml or defaults) ===

    default_channel: str = Field(
        default="loycewear",
        description="Channel served when a request does not name one",
    )
    lowercase_channel_names: bool = Field(
        default=True, description="Lower-case channel names during normalization"
    )

    feed_default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    feed_max_page_size: int = Field(default=MAX_PAGE_SIZE, ge=1)
    feed_row_fanout_factor: int = Field(default=ROW_FANOUT_FACTOR, ge=1)
    feed_max_rows_per_page: int = Field(default=MAX_ROWS_PER_PAGE, ge=1)

    media_cache_ttl_seconds: float = Field(default=MEDIA_CACHE_TTL_SECONDS, gt=0)
    telegram_api_base_url: str = Field(default="https://api.telegram.org")
    telegram_http_timeout_seconds: float = Field(
        default=TELEGRAM_HTTP_TIMEOUT_SECONDS_DEFAULT, gt=0
    )

    database_type: Literal["sqlite", "postgres"] = Field(default="sqlite")
    db_path: str = Field(default="data/channel_feed.db")
    postgres_host: str = Field(default="localhost")
    postgres_port: int = Field(default=5432)
    postgres_database: str = Field(default="channel_feed")
    postgres_user: str = Field(default="postgres")
    postgres_min_connections: int = Field(default=POSTGRES_MIN_CONNECTIONS_DEFAULT)
    postgres_max_connections: int = Field(default=POSTGRES_MAX_CONNECTIONS_DEFAULT)
    postgres_connect_timeout_seconds: int = Field(
        default=POSTGRES_CONNECT_TIMEOUT_SECONDS_DEFAULT
    )
    postgres_application_name: str = Field(default=POSTGRES_APPLICATION_NAME_DEFAULT)

    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    def __init__(self, **data: Any):
        """Initialize settings with auto-loaded configs from all YAML files."""
        config = load_all_configs()

        super().__init__(**data)
        self._apply_yaml_defaults(config)

    def _apply_yaml_defaults(self, config: dict[str, Any]) -> None:
        """Apply YAML-sourced defaults without overriding env-provided values."""

        fields_from_env = set(self.model_fields_set)

        def _assign(field_name: str, value: Any) -> None:
            if value is None:
                return
            if field_name in fields_from_env:
                return

            object.__setattr__(self, field_name, value)
            self.model_fields_set.add(field_name)

        feed_config = config.get("feed") or {}
        _assign("default_channel", feed_config.get("default_channel"))
        _assign("lowercase_channel_names", feed_config.get("lowercase_channel_names"))
        _assign("feed_default_page_size", feed_config.get("default_page_size"))
        _assign("feed_max_page_size", feed_config.get("max_page_size"))
        _assign("feed_row_fanout_factor", feed_config.get("row_fanout_factor"))
        _assign("feed_max_rows_per_page", feed_config.get("max_rows_per_page"))

        media_config = config.get("media") or {}
        _assign("media_cache_ttl_seconds", media_config.get("cache_ttl_seconds"))

        telegram_config = config.get("telegram") or {}
        _assign("telegram_api_base_url", telegram_config.get("api_base_url"))
        _assign(
            "telegram_http_timeout_seconds", telegram_config.get("timeout_seconds")
        )

        database_config = config.get("database") or {}
        _assign("database_type", database_config.get("type"))
        _assign("db_path", database_config.get("path"))

        postgres_config = database_config.get("postgres") or {}
        _assign("postgres_host", postgres_config.get("host"))
        _assign("postgres_port", postgres_config.get("port"))
        _assign("postgres_database", postgres_config.get("database"))
        _assign("postgres_user", postgres_config.get("user"))
        _assign("postgres_min_connections", postgres_config.get("min_connections"))
        _assign("postgres_max_connections", postgres_config.get("max_connections"))

        logging_config = config.get("logging") or {}
        _assign("log_level", logging_config.get("level"))
        _assign("json_logs", logging_config.get("json"))

    @property
    def bot_token(self) -> str | None:
        """Plain bot token, or None when not configured."""
        if self.telegram_bot_token is None:
            return None
        value = self.telegram_bot_token.get_secret_value().strip()
        return value or None


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create global settings instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
