"""Configuration defaults and environment-derived settings for the preload server."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

HOST: str = "0.0.0.0"
PORT: int = 3000
PORT_RETRY_ATTEMPTS: int = 10
PUBLIC_DIR: str = "public"
ASSETS_DIR: str = "public/assets"
ASSETS_PREFIX: str = "/assets/"
ASSETS_MAX_AGE_SECS: int = 31_536_000
BODY_LIMIT: int = 1024
KEEP_ALIVE_TIMEOUT_MS: int = 5000
CONNECTION_TIMEOUT_MS: int = 5000
REQUEST_TIMEOUT_MS: int = 30_000
WORKER_COUNT: int = 16
REQUEST_QUEUE_SIZE: int = 256
MAX_KEEPALIVE_REQUESTS: int = 1000
MAX_HEADER_BYTES: int = 16_384
MAX_TARGET_LENGTH: int = 8192
READ_CHUNK_SIZE: int = 65_536
DRAIN_TIMEOUT_SECS: float = 5.0
LOG_FORMAT: str = "plain"
SERVER_NAME_TEMPLATE: str = "preload-server-{port}"
DEFAULT_HEALTH_CHECK_API_KEY: str = "dev-health-check-key-12345"
AFFINITY_DELAY_SECS: float = 1.0
ENV_FILE: str = ".env"


def load_env_file(path: str | Path = ENV_FILE) -> bool:
    """Load ``KEY=value`` lines from ``path`` into the environment; variables already set win."""
    loaded = load_dotenv(path, override=False)
    if loaded:
        logger.info("Loaded environment from %s", path)
    return loaded


def _read_int(
    environ: Mapping[str, str],
    name: str,
    default: int,
    *,
    minimum: int = 0,
) -> int:
    """Read an integer variable; unparseable values or values below ``minimum`` use ``default``."""
    raw_value = environ.get(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        value = int(raw_value.strip())
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw_value, default)
        return default
    if value < minimum:
        logger.warning("%s must be at least %s, using %s", name, minimum, default)
        return default
    return value


def _read_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() == "true"


@dataclass(frozen=True, slots=True)
class Settings:
    """Process settings, read once at startup and never mutated."""

    host: str = HOST
    port: int = PORT
    server_name: str = SERVER_NAME_TEMPLATE.format(port=PORT)
    body_limit: int = BODY_LIMIT
    keep_alive_timeout_ms: int = KEEP_ALIVE_TIMEOUT_MS
    connection_timeout_ms: int = CONNECTION_TIMEOUT_MS
    request_timeout_ms: int = REQUEST_TIMEOUT_MS
    trust_proxy: bool = False
    enable_logging: bool = False
    log_format: str = LOG_FORMAT
    public_dir: str = PUBLIC_DIR
    assets_dir: str = ASSETS_DIR
    health_check_api_key: str = DEFAULT_HEALTH_CHECK_API_KEY
    single_core_mode: bool = False
    cpu_core_number: int = 0
    thread_pool_size: int = WORKER_COUNT

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        port: int | None = None,
    ) -> "Settings":
        """Build settings from environment variables; ``port`` overrides ``PORT``."""
        env = os.environ if environ is None else environ
        resolved_port = port if port is not None else _read_int(env, "PORT", PORT)
        log_format = env.get("LOG_FORMAT", LOG_FORMAT).strip().lower()
        if log_format not in {"plain", "json"}:
            logger.warning("Ignoring invalid LOG_FORMAT=%r, using %s", log_format, LOG_FORMAT)
            log_format = LOG_FORMAT

        return cls(
            host=env.get("HOST") or HOST,
            port=resolved_port,
            server_name=env.get("SERVER_NAME") or SERVER_NAME_TEMPLATE.format(port=resolved_port),
            body_limit=_read_int(env, "BODY_LIMIT", BODY_LIMIT),
            keep_alive_timeout_ms=_read_int(env, "KEEP_ALIVE_TIMEOUT", KEEP_ALIVE_TIMEOUT_MS, minimum=1),
            connection_timeout_ms=_read_int(env, "CONNECTION_TIMEOUT", CONNECTION_TIMEOUT_MS, minimum=1),
            request_timeout_ms=_read_int(env, "REQUEST_TIMEOUT", REQUEST_TIMEOUT_MS, minimum=1),
            trust_proxy=_read_flag(env, "TRUST_PROXY"),
            enable_logging=_read_flag(env, "ENABLE_LOGGING"),
            log_format=log_format,
            public_dir=env.get("PUBLIC_DIR") or PUBLIC_DIR,
            health_check_api_key=env.get("HEALTH_CHECK_API_KEY") or DEFAULT_HEALTH_CHECK_API_KEY,
            single_core_mode=_read_flag(env, "SINGLE_CORE_MODE"),
            cpu_core_number=_read_int(env, "CPU_CORE_NUMBER", 0),
            thread_pool_size=_read_int(env, "THREAD_POOL_SIZE", WORKER_COUNT, minimum=1),
        )

    @property
    def public_path(self) -> Path:
        return Path(self.public_dir)

    @property
    def assets_path(self) -> Path:
        return Path(self.assets_dir)

    @property
    def uses_default_health_key(self) -> bool:
        return self.health_check_api_key == DEFAULT_HEALTH_CHECK_API_KEY
