"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_CONCURRENCY = 25


@dataclass
class ClientConfig:
    """Configuration for service clients and their transports.

    Environment variables (read by ``from_env``):
    - SERVICE_COMMANDS_BASE_URL
    - SERVICE_COMMANDS_TIMEOUT
    - SERVICE_COMMANDS_CONCURRENCY
    - SERVICE_COMMANDS_VERIFY ("0", "false" or "no" disables TLS verification)
    """

    base_url: str = "http://localhost:8080"
    timeout: float = 30.0

    # Default pool size for execute_all / create_pool
    concurrency: int = DEFAULT_CONCURRENCY

    headers: dict[str, str] = field(default_factory=dict)
    verify: bool = True
    follow_redirects: bool = False

    @classmethod
    def from_env(cls, **overrides: object) -> ClientConfig:
        """Build a config from environment variables, then apply overrides."""
        config = cls()
        if base_url := os.getenv("SERVICE_COMMANDS_BASE_URL"):
            config.base_url = base_url
        if timeout := os.getenv("SERVICE_COMMANDS_TIMEOUT"):
            config.timeout = float(timeout)
        if concurrency := os.getenv("SERVICE_COMMANDS_CONCURRENCY"):
            config.concurrency = int(concurrency)
        if verify := os.getenv("SERVICE_COMMANDS_VERIFY"):
            config.verify = verify.lower() not in ("0", "false", "no")

        for key, value in overrides.items():
            if not hasattr(config, key):
                raise ValueError(f"Unknown config option: {key}")
            setattr(config, key, value)
        return config
