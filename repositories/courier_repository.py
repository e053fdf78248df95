"""
Courier repository (persistence).

- courier_settings: per-provider credentials and switches (read only here).
- courier_logs: append-only audit trail of every provider request/response.
  Rows are inserted, never updated or deleted.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.courier import CourierLogEntry, CourierSettings
from repositories.client import execute

_COURIER_SETTINGS_TABLE: str = "courier_settings"
_COURIER_LOGS_TABLE: str = "courier_logs"


def _row_to_settings(row: Mapping[str, Any]) -> CourierSettings:
    return CourierSettings(
        provider=str(row["provider"]),
        enabled=bool(row.get("enabled") or False),
        api_base_url=row.get("api_base_url"),
        api_key=row.get("api_key"),
        api_secret=row.get("api_secret"),
        merchant_id=row.get("merchant_id"),
        cod_enabled=bool(row.get("cod_enabled", True)),
    )


def _log_to_row(entry: CourierLogEntry) -> dict[str, Any]:
    return {
        "order_id": entry.order_id,
        "action": entry.action.value,
        "provider": entry.provider,
        "status": entry.outcome.value,
        "message": entry.message,
        "request_payload": dict(entry.request_payload) if entry.request_payload is not None else None,
        "response_payload": dict(entry.response_payload) if entry.response_payload is not None else None,
    }


class CourierSettingsRepository:
    def __init__(self, client: Client) -> None:
        self._client = client

    def get(self, provider: str) -> Optional[CourierSettings]:
        query = (
            self._client.table(_COURIER_SETTINGS_TABLE)
            .select("*")
            .eq("provider", provider)
            .limit(1)
        )
        rows = execute(query, "fetch courier settings")
        if not rows:
            return None
        return _row_to_settings(rows[0])


class CourierLogRepository:
    def __init__(self, client: Client) -> None:
        self._client = client

    def append(self, entry: CourierLogEntry) -> None:
        query = self._client.table(_COURIER_LOGS_TABLE).insert(_log_to_row(entry))
        execute(query, "write courier log")

    def list_for_order(self, order_id: str) -> List[Mapping[str, Any]]:
        query = (
            self._client.table(_COURIER_LOGS_TABLE)
            .select("*")
            .eq("order_id", order_id)
            .order("created_at", desc=False)
        )
        return execute(query, "list courier logs")


__all__ = ["CourierLogRepository", "CourierSettingsRepository"]
