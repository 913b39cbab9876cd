"""
Service Configuration
=====================

Settings are read from ``~/.bestseller_ai/config.json`` (camelCase keys).
A missing or unreadable file is not an error: defaults apply.

Example config.json:
    {
        "maxAttempts": 3,
        "requestTimeoutSeconds": 120,
        "cacheEnabled": true,
        "cacheMaxEntries": 512,
        "maxConcurrentPerProvider": null,
        "systemPrompt": "You are a professional ebook author and writing assistant.",
        "logging": {"level": "INFO", "file": "~/.bestseller_ai/service.log"}
    }
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .credentials import CONFIG_DIR
from .providers import DEFAULT_SYSTEM_PROMPT, DEFAULT_TIMEOUT_SECONDS
from .retry import DEFAULT_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

CONFIG_FILE = CONFIG_DIR / "config.json"


@dataclass
class ServiceConfig:
    """Runtime settings for an AIService instance"""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    cache_enabled: bool = True
    cache_max_entries: int = 512
    max_concurrent_per_provider: int | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServiceConfig":
        config = cls()

        def _pick(key: str, kind: type | tuple[type, ...]) -> Any:
            value = data.get(key)
            if value is None:
                return None
            # bool is an int subclass; only accept it where a bool is wanted
            if isinstance(value, bool) != (kind is bool) or not isinstance(value, kind):
                logger.warning(f"Ignoring invalid config value for '{key}': {value!r}")
                return None
            return value

        max_attempts = _pick("maxAttempts", int)
        if max_attempts is not None and max_attempts >= 1:
            config.max_attempts = max_attempts

        timeout = _pick("requestTimeoutSeconds", (int, float))
        if timeout is not None and timeout > 0:
            config.request_timeout_seconds = float(timeout)

        cache_enabled = _pick("cacheEnabled", bool)
        if cache_enabled is not None:
            config.cache_enabled = cache_enabled

        cache_max_entries = _pick("cacheMaxEntries", int)
        if cache_max_entries is not None and cache_max_entries >= 1:
            config.cache_max_entries = cache_max_entries

        max_concurrent = _pick("maxConcurrentPerProvider", int)
        if max_concurrent is not None and max_concurrent >= 1:
            config.max_concurrent_per_provider = max_concurrent

        system_prompt = _pick("systemPrompt", str)
        if system_prompt:
            config.system_prompt = system_prompt

        log_config = data.get("logging", {})
        if isinstance(log_config, dict):
            level = log_config.get("level")
            if isinstance(level, str) and level:
                config.log_level = level.upper()
            log_file = log_config.get("file")
            if isinstance(log_file, str) and log_file:
                config.log_file = log_file

        return config


def load_config(path: Path | None = None) -> ServiceConfig:
    """Load configuration, falling back to defaults on any problem"""
    config_path = path or CONFIG_FILE
    if not config_path.exists():
        return ServiceConfig()

    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            loaded = json.load(config_file)
    except (OSError, ValueError) as exc:
        logger.warning(f"Failed to load config from {config_path}: {exc}")
        return ServiceConfig()

    if not isinstance(loaded, dict):
        logger.warning(f"Config file {config_path} did not contain an object.")
        return ServiceConfig()

    return ServiceConfig.from_dict(loaded)


def setup_logging(config: ServiceConfig, verbose: bool = False) -> None:
    """Configure root logging from the service config"""
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    file_error: OSError | None = None

    if config.log_file:
        expanded_path = os.path.expanduser(config.log_file)
        try:
            handlers.append(logging.FileHandler(expanded_path, encoding="utf-8"))
        except OSError as e:
            file_error = e

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )

    # httpx logs full request URLs at INFO, which include Google's ?key=
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    if file_error is not None:
        logger.warning(f"Failed to setup log file {config.log_file}: {file_error}")
