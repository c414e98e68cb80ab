from __future__ import annotations

import os
from dataclasses import dataclass


def _f(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _opt_f(name: str) -> float | None:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class ClientConfig:
    """Runtime settings shared by the transport and the stores.

    Values default from ``ELIDE_*`` environment variables so a deployment
    can tune them without code changes.
    """

    # Used when a jsonapi store declaration carries no baseURL
    base_url: str = os.getenv("ELIDE_BASE_URL", "")

    # HTTP request timeout, seconds
    timeout: float = _f("ELIDE_TIMEOUT", 30.0)

    # Attempts for idempotent GET requests; 1 disables retry
    retry_attempts: int = _i("ELIDE_RETRY_ATTEMPTS", 1)

    # Expiry for upstream-materialized entries, seconds; None keeps them forever
    ttl: float | None = _opt_f("ELIDE_TTL")

    user_agent: str = os.getenv("ELIDE_USER_AGENT", "elide-client/0.3")
    log_level: str = os.getenv("ELIDE_LOG_LEVEL", "INFO")


CONFIG = ClientConfig()
