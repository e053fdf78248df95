"""
Steadfast courier HTTP client.

Thin, synchronous wrapper around the provider API:
- POST /create_order              create a parcel
- GET  /status_by_cid/{id}        delivery status by consignment id
- GET  /get_balance               credentials check

Every failure (network, auth, validation, malformed body) raises
CourierProviderError carrying the provider's message and raw response. Calls
are never retried here.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from domain.courier import CourierSettings, ParcelReceipt, ParcelRequest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS: float = 15.0


class CourierProviderError(RuntimeError):
    """A courier provider call failed. `message` is the provider's own text."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_payload: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.response_payload = response_payload
        super().__init__(message)


def _error_message(body: Mapping[str, Any], fallback: str) -> str:
    """Pull a human-readable message out of a provider error body."""

    message = body.get("message")
    errors = body.get("errors")
    if isinstance(errors, Mapping) and errors:
        details = []
        for field_name, problems in errors.items():
            if isinstance(problems, list):
                details.append(f"{field_name}: {', '.join(str(p) for p in problems)}")
            else:
                details.append(f"{field_name}: {problems}")
        joined = "; ".join(details)
        return f"{message}: {joined}" if message else joined
    return str(message) if message else fallback


class SteadfastClient:
    def __init__(
        self,
        settings: CourierSettings,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not settings.api_base_url or not settings.api_key or not settings.api_secret:
            raise ValueError("Courier settings are missing api_base_url, api_key or api_secret")
        self.provider = settings.provider
        self._client = httpx.Client(
            base_url=settings.api_base_url.rstrip("/"),
            headers={
                "Api-Key": settings.api_key,
                "Secret-Key": settings.api_secret,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "SteadfastClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise CourierProviderError(f"Courier API timeout: {e}") from e
        except httpx.HTTPError as e:
            raise CourierProviderError(f"Courier API request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            raise CourierProviderError(
                f"Courier API returned a non-JSON response (HTTP {response.status_code})",
                status_code=response.status_code,
                response_payload={"raw": response.text[:1000]},
            )

        body_status = body.get("status")
        if response.is_error or (body_status is not None and body_status != 200):
            raise CourierProviderError(
                _error_message(body, f"Courier API error (HTTP {response.status_code})"),
                status_code=response.status_code,
                response_payload=body,
            )
        return body

    def create_parcel(self, request: ParcelRequest, idempotency_key: Optional[str] = None) -> ParcelReceipt:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        body = self._request("POST", "/create_order", json=request.to_payload(), headers=headers)

        consignment = body.get("consignment")
        if not isinstance(consignment, dict) or consignment.get("consignment_id") in (None, ""):
            raise CourierProviderError(
                _error_message(body, "Courier API response has no consignment"),
                response_payload=body,
            )

        tracking = consignment.get("tracking_code")
        return ParcelReceipt(
            consignment_id=str(consignment["consignment_id"]),
            tracking_id=str(tracking) if tracking else None,
            provider_status=consignment.get("status"),
            raw_response=body,
        )

    def get_status(self, consignment_id: str) -> tuple[str, dict[str, Any]]:
        """Return (delivery_status, raw response body)."""

        body = self._request("GET", f"/status_by_cid/{consignment_id}")
        delivery_status = body.get("delivery_status")
        if not delivery_status:
            raise CourierProviderError(
                _error_message(body, "Courier API response has no delivery_status"),
                response_payload=body,
            )
        return str(delivery_status), body

    def get_balance(self) -> dict[str, Any]:
        return self._request("GET", "/get_balance")


__all__ = ["CourierProviderError", "DEFAULT_TIMEOUT_SECONDS", "SteadfastClient"]
