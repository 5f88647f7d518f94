from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import MissingEntrypointError


def _get_bool_env(name: str, default: bool) -> bool:
    """Parse a boolean environment variable with a safe default."""
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _get_optional_env(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


@dataclass(frozen=True)
class ProviderConfig:
    """Settings for building a HydraDataProvider."""

    entrypoint: str
    bearer_token: Optional[str] = None
    timeout_seconds: float = 10.0
    mercure_hub: Optional[str] = None
    mercure_jwt: Optional[str] = None
    # None means "same as entrypoint"
    mercure_topic_url: Optional[str] = None
    use_embedded: bool = False
    disable_cache: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        entrypoint = (self.entrypoint or "").strip().rstrip("/")
        if not entrypoint:
            raise MissingEntrypointError("entrypoint must be provided.")
        object.__setattr__(self, "entrypoint", entrypoint)
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")

    @property
    def topic_url(self) -> str:
        return self.mercure_topic_url or self.entrypoint

    @classmethod
    def from_env(cls, *, use_dotenv: bool = True) -> "ProviderConfig":
        if use_dotenv:
            load_dotenv()

        entrypoint = os.getenv("HYDRA_ENTRYPOINT", "").strip()
        if not entrypoint:
            raise MissingEntrypointError("HYDRA_ENTRYPOINT not set")

        timeout_raw = os.getenv("HYDRA_TIMEOUT_S", "").strip()
        return cls(
            entrypoint=entrypoint,
            bearer_token=_get_optional_env("HYDRA_BEARER_TOKEN"),
            timeout_seconds=float(timeout_raw) if timeout_raw else 10.0,
            mercure_hub=_get_optional_env("HYDRA_MERCURE_HUB"),
            mercure_jwt=_get_optional_env("HYDRA_MERCURE_JWT"),
            mercure_topic_url=_get_optional_env("HYDRA_MERCURE_TOPIC_URL"),
            use_embedded=_get_bool_env("HYDRA_USE_EMBEDDED", False),
            disable_cache=_get_bool_env("HYDRA_DISABLE_CACHE", False),
            log_level=os.getenv("HYDRA_LOG_LEVEL", "INFO").strip() or "INFO",
        )


__all__ = ["ProviderConfig"]
