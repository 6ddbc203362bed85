"""
Configuration management for the posprint relay.
Loads and validates configuration from YAML files using Pydantic.
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ConfigDict, ValidationInfo, field_validator, model_validator

from posprint.domain.ports import ConfigurationError


logger = logging.getLogger(__name__)


class RedisConfig(BaseModel):
    """Redis connection configuration shared by the store and the channel."""
    model_config = ConfigDict(extra='forbid')

    url: str = Field(
        default="redis://redis:6379/0",
        description="Redis connection URL"
    )
    max_connections: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum connections in Redis pool"
    )
    socket_timeout: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="Socket timeout in seconds (must exceed channel.block_ms)"
    )
    socket_connect_timeout: float = Field(
        default=5.0,
        ge=1.0,
        le=30.0,
        description="Connection timeout in seconds"
    )
    health_check_interval: int = Field(
        default=30,
        ge=10,
        le=300,
        description="Health check interval in seconds"
    )


class StoreConfig(BaseModel):
    """Message store configuration."""
    model_config = ConfigDict(extra='forbid')

    backend: str = Field(default="redis", description="Store backend: redis or memory")
    table_name: str = Field(default="posprint:messages", description="Key prefix for message records")
    index_name: str = Field(default="by-source-ip", description="Name of the origin/time index")
    retention_seconds: Optional[int] = Field(
        default=None,
        ge=60,
        description="TTL for message records, unset keeps them indefinitely"
    )

    @field_validator('backend')
    @classmethod
    def validate_backend(cls, v):
        if v.lower() not in ('redis', 'memory'):
            raise ValueError("Store backend must be one of: ['redis', 'memory']")
        return v.lower()

    @field_validator('table_name', 'index_name')
    @classmethod
    def validate_names(cls, v):
        if not v or not v.strip():
            raise ValueError("Store table and index names cannot be empty")
        return v.strip()


class RateLimitConfig(BaseModel):
    """Per-origin rate limit configuration."""
    model_config = ConfigDict(extra='forbid')

    max_messages: int = Field(default=10, description="Maximum messages per origin per window")
    window_hours: int = Field(default=24, description="Sliding window length in hours")

    @field_validator('max_messages', 'window_hours', mode='before')
    @classmethod
    def fallback_to_default(cls, v, info: ValidationInfo):
        """Non-numeric or non-positive values fall back to the default."""
        try:
            parsed = int(v)
        except (TypeError, ValueError):
            parsed = 0

        if parsed > 0:
            return parsed

        default = cls.model_fields[info.field_name].default
        logger.warning(
            f"Invalid rate limit value for {info.field_name}: {v!r}, using {default}",
            extra={"component": "config"}
        )
        return default


class ChannelConfig(BaseModel):
    """Pub/sub channel configuration."""
    model_config = ConfigDict(extra='forbid')

    url: Optional[str] = Field(
        default=None,
        description="Channel endpoint, falls back to redis.url"
    )
    topic: str = Field(default="posprint:print", description="Channel (stream) name")
    client_id: str = Field(
        default="posprint-listener",
        description="Stable subscriber identity, names the consumer group"
    )
    maxlen_approx: int = Field(
        default=10000,
        ge=100,
        description="Approximate max length for channel trimming"
    )
    block_ms: int = Field(default=5000, ge=100, le=60000, description="Read block time")
    batch_size: int = Field(default=10, ge=1, le=100, description="Entries read per call")
    reconnect_min_delay: float = Field(default=1.0, gt=0, description="First reconnect backoff in seconds")
    reconnect_max_delay: float = Field(default=30.0, gt=0, description="Backoff ceiling in seconds")

    @field_validator('topic', 'client_id')
    @classmethod
    def validate_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError("Channel topic and client id cannot be empty")
        return v.strip()


class PrinterConfig(BaseModel):
    """Network receipt printer configuration."""
    model_config = ConfigDict(extra='forbid')

    host: str = Field(default="192.168.0.5", description="Printer host")
    port: int = Field(default=9100, ge=1, le=65535, description="Printer raw TCP port")
    line_width: int = Field(default=42, ge=8, le=256, description="Characters per printed line")
    timeout: float = Field(default=10.0, gt=0, description="Device socket timeout in seconds")
    feed_lines: int = Field(default=3, ge=0, le=20, description="Blank lines fed before the cut")
    queue_size: int = Field(default=100, ge=1, description="Maximum queued print jobs")
    drain_timeout_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Time allowed for queued jobs to finish at shutdown"
    )


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    model_config = ConfigDict(extra='forbid')

    host: str = Field(
        default="0.0.0.0",
        description="Host to bind to"
    )
    port: int = Field(
        default=8080,
        ge=1024,
        le=65535,
        description="Port to bind to"
    )
    log_level: str = Field(
        default="info",
        description="Uvicorn log level"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['critical', 'error', 'warning', 'info', 'debug', 'trace']
        if v.lower() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.lower()


class LoggingConfig(BaseModel):
    """Logging configuration."""
    model_config = ConfigDict(extra='forbid')

    level: str = Field(
        default="INFO",
        description="Logging level"
    )
    json_format: bool = Field(
        default=True,
        description="Enable JSON log formatting"
    )
    enable_correlation: bool = Field(
        default=True,
        description="Enable correlation IDs in logs"
    )

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()


class AppConfig(BaseModel):
    """Main application configuration."""
    model_config = ConfigDict(extra='forbid')

    redis: RedisConfig = Field(default_factory=RedisConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    printer: PrinterConfig = Field(default_factory=PrinterConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode='after')
    def validate_read_timeout(self):
        """Blocking channel reads must finish before the socket gives up on them."""
        if self.redis.socket_timeout * 1000 <= self.channel.block_ms:
            raise ValueError(
                f"redis.socket_timeout ({self.redis.socket_timeout}s) must exceed "
                f"channel.block_ms ({self.channel.block_ms}ms)"
            )
        return self


def resolve_channel_endpoint(config: AppConfig) -> str:
    """
    Resolve the channel endpoint URL.

    Raises:
        ConfigurationError: If neither channel.url nor redis.url is set
    """
    endpoint = (config.channel.url or config.redis.url or "").strip()
    if not endpoint:
        raise ConfigurationError("Channel endpoint is not configured")
    return endpoint


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to config file, defaults to CONFIG_PATH env var or ./config.yml

    Returns:
        Loaded and validated configuration

    Raises:
        ValueError: If config validation or YAML parsing fails
    """
    if config_path is None:
        config_path = os.getenv('CONFIG_PATH', './config.yml')

    config_file = Path(config_path)

    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise ValueError(f"Invalid YAML config: {e}") from e

        logger.info(f"Loaded config from: {config_file}")
    else:
        logger.warning(f"Config file not found: {config_file}, using defaults")
        yaml_data = {}

    yaml_data = _apply_env_overrides(yaml_data)

    try:
        config = AppConfig(**yaml_data)
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        raise

    logger.info(
        "Configuration loaded successfully",
        extra={
            "component": "config",
            "config_file": str(config_file),
            "store_backend": config.store.backend,
            "channel_topic": config.channel.topic,
            "rate_limit_max": config.rate_limit.max_messages,
            "rate_limit_window_hours": config.rate_limit.window_hours
        }
    )

    return config


def _apply_env_overrides(config_data: dict) -> dict:
    """
    Apply environment variable overrides to config data.

    Supports dot notation for nested keys:
    - REDIS_URL -> redis.url
    - CHANNEL_TOPIC -> channel.topic
    - PRINTER_WIDTH -> printer.line_width
    """
    env_mappings = {
        'REDIS_URL': 'redis.url',
        'STORE_BACKEND': 'store.backend',
        'STORE_TABLE_NAME': 'store.table_name',
        'STORE_RATE_INDEX': 'store.index_name',
        'RATE_LIMIT_MAX_MESSAGES': 'rate_limit.max_messages',
        'RATE_LIMIT_WINDOW_HOURS': 'rate_limit.window_hours',
        'CHANNEL_URL': 'channel.url',
        'CHANNEL_TOPIC': 'channel.topic',
        'CHANNEL_CLIENT_ID': 'channel.client_id',
        'PRINTER_HOST': 'printer.host',
        'PRINTER_PORT': 'printer.port',
        'PRINTER_WIDTH': 'printer.line_width',
        'SERVER_HOST': 'server.host',
        'SERVER_PORT': 'server.port',
        'LOG_LEVEL': 'logging.level',
        'LOG_JSON': 'logging.json_format'
    }

    for env_var, config_path in env_mappings.items():
        env_value = os.getenv(env_var)
        if env_value is not None:
            _set_nested_value(config_data, config_path, env_value)
            logger.debug(f"Applied env override: {env_var} -> {config_path}")

    return config_data


def _set_nested_value(data: dict, path: str, value: str) -> None:
    """Set a nested dictionary value using dot notation (e.g. 'redis.url')."""
    keys = path.split('.')
    current = data

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = _convert_env_value(value)


def _convert_env_value(value: str):
    """
    Convert environment variable string to appropriate Python type.

    Only word-form booleans are converted, so "1" stays a number.
    """
    if value.lower() in ('true', 'yes', 'on'):
        return True
    elif value.lower() in ('false', 'no', 'off'):
        return False

    try:
        if '.' in value:
            return float(value)
        else:
            return int(value)
    except ValueError:
        pass

    return value
