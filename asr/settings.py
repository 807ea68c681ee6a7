from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("ASR_DB_PATH", "asr.db")
    poll_interval_s: int = _env_int("ASR_POLL_INTERVAL_S", 30)
    enable_loop: bool = _env_bool("ASR_ENABLE_LOOP", True)

    # Desired-state resource coordinates
    group: str = os.getenv("ASR_GROUP", "app.example.com")
    version: str = os.getenv("ASR_VERSION", "v1beta1")
    kind: str = os.getenv("ASR_KIND", "MyApp")
    plural: str = os.getenv("ASR_PLURAL", "myapps")

    # Cluster access. No namespace means all namespaces.
    watch_namespace: str | None = os.getenv("ASR_WATCH_NAMESPACE") or None
    kubeconfig: str | None = os.getenv("ASR_KUBECONFIG") or None

    # Optimistic-concurrency retries
    retry_attempts: int = _env_int("ASR_RETRY_ATTEMPTS", 5)
    retry_base_delay_s: float = _env_float("ASR_RETRY_BASE_DELAY_S", 0.01)

    # Guards the manual reconcile trigger on the HTTP API.
    api_user: str = os.getenv("ASR_API_USER", "admin")
    api_password: str = os.getenv("ASR_API_PASSWORD", "change-me")

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


settings = Settings()
