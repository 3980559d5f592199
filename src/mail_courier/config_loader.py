# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration for mail-courier transports.

Settings are read from an INI-style file layered over ``GMC_*`` environment
variables layered over defaults (priority: config file > environment >
defaults). Invalid values are logged and replaced by the lower layer.

Example:
    Configuration file format (courier.ini)::

        [tcp]
        host = mailer.internal
        port = 4003
        connect_timeout = 5
        read_timeout = 10
        framing = delimited

        [kafka]
        bootstrap_servers = kafka-1:9092,kafka-2:9092
        topic = email.send.requested
        client_id = billing-app

        [retry]
        max_attempts = 3
        base_delay = 0.1

    Loading::

        config = load_config("/etc/mail-courier/courier.ini")
        config.tcp.port  # 4003
"""

from __future__ import annotations

import configparser
import os
from collections.abc import Callable
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any

from .logger import get_logger
from .transport.framing import DEFAULT_MAX_FRAME_BYTES

logger = get_logger("config_loader")


@dataclass
class TcpConfig:
    """Framed TCP endpoint settings."""

    host: str = "localhost"
    """Remote service host."""

    port: int = 4003
    """Remote service port."""

    connect_timeout: float = 5.0
    """Seconds allowed for the TCP connect."""

    read_timeout: float = 10.0
    """Seconds allowed for the whole response to arrive."""

    max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES
    """Ceiling on request and response body size."""

    framing: str = "delimited"
    """Framing convention: ``delimited`` or ``length_prefix``."""

    strict_success: bool = False
    """Treat a response without a ``success`` field as a decode error."""

    accept_undecodable_response: bool = True
    """Count a response that arrived but could not be decoded as delivered."""


@dataclass
class KafkaConfig:
    """Event broker settings."""

    bootstrap_servers: str = "localhost:9092"
    """Comma separated broker addresses."""

    client_id: str = "mail-courier"
    """Producer client id, also used as envelope ``source``."""

    topic: str = "email.send.requested"
    """Destination topic."""

    retry_backoff_ms: int = 100
    """Producer-internal backoff between broker retries."""

    request_timeout_ms: int = 30000
    """Producer request timeout."""

    flush_timeout: float = 10.0
    """Seconds to wait for unacknowledged sends on shutdown."""


@dataclass
class RetryConfig:
    """Retry orchestrator settings."""

    max_attempts: int = 3
    """Total attempts including the first one."""

    base_delay: float = 0.1
    """Base delay in seconds, multiplied by 2**attempt."""

    max_delay: float | None = None
    """Optional cap on a single wait."""

    jitter: float = 0.0
    """Random fraction added to or removed from each wait."""


@dataclass
class CourierConfig:
    """Main configuration container.

    Groups:
    - tcp / storage_tcp: framed TCP endpoints of the email and storage services
    - kafka / storage_kafka: event topics of the email and storage services
    - retry: backoff schedule
    """

    tcp: TcpConfig = field(default_factory=TcpConfig)
    storage_tcp: TcpConfig = field(default_factory=lambda: TcpConfig(port=4004))
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    storage_kafka: KafkaConfig = field(
        default_factory=lambda: KafkaConfig(topic="storage.file.events")
    )
    retry: RetryConfig = field(default_factory=RetryConfig)
    log_level: str = "INFO"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def parse_optional_float(value: str) -> float | None:
    value = value.strip()
    if value.lower() in ("", "none", "null"):
        return None
    return float(value)


TCP_KEYS: dict[str, Callable[[str], Any]] = {
    "host": str,
    "port": int,
    "connect_timeout": float,
    "read_timeout": float,
    "max_frame_bytes": int,
    "framing": str,
    "strict_success": parse_bool,
    "accept_undecodable_response": parse_bool,
}

KAFKA_KEYS: dict[str, Callable[[str], Any]] = {
    "bootstrap_servers": str,
    "client_id": str,
    "topic": str,
    "retry_backoff_ms": int,
    "request_timeout_ms": int,
    "flush_timeout": float,
}

RETRY_KEYS: dict[str, Callable[[str], Any]] = {
    "max_attempts": int,
    "base_delay": float,
    "max_delay": parse_optional_float,
    "jitter": float,
}

# section name -> (CourierConfig attribute, env prefix, key types)
SECTIONS: dict[str, tuple[str, str, dict[str, Callable[[str], Any]]]] = {
    "tcp": ("tcp", "GMC_TCP_", TCP_KEYS),
    "storage_tcp": ("storage_tcp", "GMC_STORAGE_TCP_", TCP_KEYS),
    "kafka": ("kafka", "GMC_KAFKA_", KAFKA_KEYS),
    "storage_kafka": ("storage_kafka", "GMC_STORAGE_KAFKA_", KAFKA_KEYS),
    "retry": ("retry", "GMC_RETRY_", RETRY_KEYS),
}


def _convert(raw: str, type_fn: Callable[[str], Any], source: str, default: Any) -> Any:
    try:
        return type_fn(raw.strip())
    except (ValueError, TypeError):
        logger.warning(f"Invalid value for {source}, using {default!r}")
        return default


def _overlay(
    base: Any,
    keys: dict[str, Callable[[str], Any]],
    env_prefix: str,
    parser: configparser.ConfigParser | None,
    section: str,
) -> Any:
    """Apply environment then file values on top of ``base``."""
    values: dict[str, Any] = {}
    for key, type_fn in keys.items():
        current = getattr(base, key)
        env_var = f"{env_prefix}{key.upper()}"
        env_value = os.environ.get(env_var)
        if env_value is not None:
            current = _convert(env_value, type_fn, env_var, current)
        if parser is not None and parser.has_option(section, key):
            current = _convert(parser.get(section, key), type_fn, f"[{section}] {key}", current)
        values[key] = current
    return replace(base, **values)


def load_config(config_path: str | None = None) -> CourierConfig:
    """Load courier configuration.

    Environment variables:
        GMC_CONFIG: Config file path when ``config_path`` is not given.
        GMC_LOG_LEVEL: Logging level.
        GMC_TCP_<KEY>, GMC_STORAGE_TCP_<KEY>: TcpConfig fields.
        GMC_KAFKA_<KEY>, GMC_STORAGE_KAFKA_<KEY>: KafkaConfig fields.
        GMC_RETRY_<KEY>: RetryConfig fields.

    Args:
        config_path: Optional path to an INI file. A missing file is
            logged and ignored.

    Returns:
        CourierConfig with parsed settings, using defaults for missing values.
    """
    config_path = config_path or os.environ.get("GMC_CONFIG")
    parser: configparser.ConfigParser | None = None
    if config_path:
        if Path(config_path).exists():
            parser = configparser.ConfigParser()
            parser.read(config_path)
        else:
            logger.warning(f"Config file {config_path} not found, using environment and defaults")

    config = CourierConfig()
    for section, (attr, env_prefix, keys) in SECTIONS.items():
        setattr(config, attr, _overlay(getattr(config, attr), keys, env_prefix, parser, section))

    log_level = os.environ.get("GMC_LOG_LEVEL", config.log_level)
    if parser is not None and parser.has_option("logging", "level"):
        log_level = parser.get("logging", "level")
    config.log_level = log_level.strip().upper()
    return config


__all__ = [
    "CourierConfig",
    "KafkaConfig",
    "RetryConfig",
    "TcpConfig",
    "load_config",
]
