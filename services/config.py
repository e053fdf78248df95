"""
Runtime configuration for the order lifecycle services.

Values come from the environment (optionally a .env file in the project root).
Every setting has a default matching the storefront's checkout behavior.

Environment variables:
- LEAD_MAX_SAVES_PER_MINUTE (10)
- LEAD_MIN_SAVE_INTERVAL_SECONDS (2)
- LEAD_DEBOUNCE_SECONDS (2.5)
- LEAD_DEDUP_WINDOW_HOURS (24)
- COURIER_PROVIDER (steadfast)
- COURIER_TIMEOUT_SECONDS (15)
- CORS_ALLOW_ORIGINS (any origin)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from domain.courier import STEADFAST_PROVIDER
from domain.lead import DEDUP_WINDOW

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"Environment variable {name} must be a number, got {raw!r}") from e


@dataclass(frozen=True, slots=True)
class LeadCaptureConfig:
    max_saves_per_window: int = 10
    window_seconds: float = 60.0
    min_save_interval_seconds: float = 2.0
    debounce_seconds: float = 2.5
    dedup_window: timedelta = DEDUP_WINDOW

    def __post_init__(self) -> None:
        if self.max_saves_per_window < 1:
            raise ValueError("max_saves_per_window must be >= 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if self.min_save_interval_seconds < 0:
            raise ValueError("min_save_interval_seconds must be >= 0")
        if self.debounce_seconds < 0:
            raise ValueError("debounce_seconds must be >= 0")

    @staticmethod
    def from_env() -> "LeadCaptureConfig":
        return LeadCaptureConfig(
            max_saves_per_window=int(_env_float("LEAD_MAX_SAVES_PER_MINUTE", 10)),
            min_save_interval_seconds=_env_float("LEAD_MIN_SAVE_INTERVAL_SECONDS", 2.0),
            debounce_seconds=_env_float("LEAD_DEBOUNCE_SECONDS", 2.5),
            dedup_window=timedelta(hours=_env_float("LEAD_DEDUP_WINDOW_HOURS", 24)),
        )


@dataclass(frozen=True, slots=True)
class CourierConfig:
    provider: str = STEADFAST_PROVIDER
    timeout_seconds: float = 15.0

    @staticmethod
    def from_env() -> "CourierConfig":
        return CourierConfig(
            provider=os.getenv("COURIER_PROVIDER") or STEADFAST_PROVIDER,
            timeout_seconds=_env_float("COURIER_TIMEOUT_SECONDS", 15.0),
        )


def cors_origins() -> list[str]:
    """
    Allowed browser origins for the API (CORS_ALLOW_ORIGINS, comma-separated).

    Unset means any origin, which suits local development only.
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "")
    origins = [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]
    return origins or ["*"]


__all__ = ["CourierConfig", "LeadCaptureConfig", "cors_origins"]
