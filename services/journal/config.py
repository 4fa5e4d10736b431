"""Environment-driven settings for the journal service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

APP_NAME = "journal-service"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class JournalSettings:
    """Runtime settings, normally built with :meth:`from_env`."""

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_tls: bool = False
    max_retries: int = 10
    retry_base_delay: float = 0.1
    retry_max_delay: float = 3.0
    ttl_seconds: int = 3600
    app_env: str = "production"
    log_level: str = "INFO"
    log_format: str = "json"
    port: int = 3000
    log_bindings: Dict[str, str] = field(default_factory=dict)

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "JournalSettings":
        """Read settings from the process environment.

        A ``.env`` file is loaded first when present; variables already set
        in the environment win over the file.
        """

        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        app_env = os.getenv("APP_ENV", "production")
        return cls(
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_password=os.getenv("REDIS_PASSWORD", ""),
            redis_tls=_env_bool("REDIS_TLS"),
            max_retries=int(os.getenv("REDIS_MAX_RETRIES", "10")),
            retry_base_delay=float(os.getenv("REDIS_RETRY_BASE_DELAY", "0.1")),
            retry_max_delay=float(os.getenv("REDIS_RETRY_MAX_DELAY", "3.0")),
            ttl_seconds=int(os.getenv("JOURNAL_TTL_SECONDS", "3600")),
            app_env=app_env,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            port=int(os.getenv("PORT", "3000")),
            log_bindings={
                "app": APP_NAME,
                "environment": app_env,
                "podName": os.getenv("POD_NAME", "unknown"),
                "nodeName": os.getenv("NODE_NAME", "unknown"),
                "namespace": os.getenv("NAMESPACE", "default"),
            },
        )


__all__ = ["APP_NAME", "JournalSettings"]
