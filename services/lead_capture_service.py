"""
Lead capture service.

Keeps a best-effort snapshot of an in-progress checkout so abandoned carts can
be recovered, without ever blocking or failing the checkout itself.

Handles:
- Phone validation (incomplete snapshots are not stored)
- Rate limiting per session (window cap + minimum interval)
- Update-in-place for a session that already owns a lead
- Phone-based deduplication (one open lead per phone per 24 hours)
- Debounced saves and a forced flush on navigation-away
- Conversion of the lead once the order is placed

`save()` never raises. It returns a LeadSaveResult that callers are free to
discard; persistence failures are logged and reported as FAILED.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

from domain.lead import LeadData, LeadSession
from domain.time import Clock, utc_now
from repositories.lead_repository import LeadMatch
from services.config import LeadCaptureConfig
from services.rate_limiter import SaveRateLimiter

logger = logging.getLogger(__name__)


class LeadStore(Protocol):
    def insert(self, payload: Mapping[str, Any]) -> str: ...

    def update(
        self,
        lead_id: str,
        payload: Mapping[str, Any],
        lead_token: Optional[str] = None,
        open_only: bool = False,
    ) -> int: ...

    def find_recent_unconverted_by_phone(self, phone: str, since: Any) -> Optional[LeadMatch]: ...

    def mark_converted(self, lead_id: str, lead_token: str, order_id: str, converted_at: Any) -> int: ...


def token_limit_key(lead_token: str) -> str:
    return f"token:{lead_token}"


def limit_keys(lead_token: str, phone: str) -> tuple[str, str]:
    """Rate-limiter keys for one save: the session token and the phone."""
    return token_limit_key(lead_token), f"phone:{phone}"


class LeadSaveOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    ADOPTED = "adopted"  # reused a recent lead with the same phone
    REJECTED = "rejected"  # incomplete snapshot (phone missing/too short)
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class LeadSaveResult:
    outcome: LeadSaveOutcome
    lead_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def saved(self) -> bool:
        return self.outcome in (
            LeadSaveOutcome.CREATED,
            LeadSaveOutcome.UPDATED,
            LeadSaveOutcome.ADOPTED,
        )


class LeadCaptureService:
    """
    Lead capture for one client session.

    The session (token + lead id) is held by the instance. The rate limiter
    may be shared between instances; it is keyed by the session token.
    """

    def __init__(
        self,
        store: LeadStore,
        session: Optional[LeadSession] = None,
        config: Optional[LeadCaptureConfig] = None,
        limiter: Optional[SaveRateLimiter] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._config = config or LeadCaptureConfig()
        self._clock = clock
        self.session = session or LeadSession()
        self._limiter = limiter or SaveRateLimiter(
            max_per_window=self._config.max_saves_per_window,
            window_seconds=self._config.window_seconds,
            min_interval_seconds=self._config.min_save_interval_seconds,
            clock=clock,
        )
        self._pending_data: Optional[LeadData] = None
        self._pending_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Immediate saves
    # ------------------------------------------------------------------

    def save(self, data: LeadData, force: bool = False) -> LeadSaveResult:
        """
        Store the snapshot.

        Process:
        1. Reject when the phone is missing or shorter than 5 characters
        2. Unless forced, consult the rate limiter; over the limit -> skip
        3. Session already owns a lead -> update it in place
        4. Else adopt a recent non-converted lead with the same phone
        5. Else create a new lead
        """

        if not data.is_complete:
            return LeadSaveResult(LeadSaveOutcome.REJECTED, message="Phone is required (min 5 characters)")

        keys = limit_keys(self.session.lead_token, data.normalized_phone)
        if force:
            self._limiter.record(*keys)
        elif not self._limiter.try_acquire(*keys):
            logger.debug("Lead save skipped by rate limiter", extra={"lead_token": self.session.lead_token})
            return LeadSaveResult(LeadSaveOutcome.RATE_LIMITED, lead_id=self.session.lead_id)

        try:
            return self._persist(data)
        except Exception as e:
            logger.warning(
                "Lead save failed",
                extra={
                    "lead_id": self.session.lead_id,
                    "lead_token": self.session.lead_token,
                    "error": str(e),
                },
            )
            return LeadSaveResult(LeadSaveOutcome.FAILED, lead_id=self.session.lead_id, message=str(e))

    def _persist(self, data: LeadData) -> LeadSaveResult:
        now = self._clock()

        if self.session.lead_id:
            payload = data.to_payload(lead_token=self.session.lead_token, activity_at=now)
            updated = self._store.update(
                self.session.lead_id, payload, lead_token=self.session.lead_token, open_only=True
            )
            if updated:
                return LeadSaveResult(LeadSaveOutcome.UPDATED, lead_id=self.session.lead_id)
            # Row gone or no longer ours; start over.
            logger.info("Session lead no longer writable, re-resolving", extra={"lead_id": self.session.lead_id})
            self.session.lead_id = None

        match = self._store.find_recent_unconverted_by_phone(
            data.normalized_phone, now - self._config.dedup_window
        )
        if match is not None:
            payload = data.to_payload(lead_token=match.lead_token, activity_at=now)
            if self._store.update(match.lead_id, payload, lead_token=match.lead_token, open_only=True):
                self.session.adopt(match.lead_id, match.lead_token)
                return LeadSaveResult(LeadSaveOutcome.ADOPTED, lead_id=match.lead_id)
            # Converted or deleted since the lookup.
            logger.info("Matched lead no longer writable, creating a new one", extra={"lead_id": match.lead_id})

        payload = data.to_payload(lead_token=self.session.lead_token, activity_at=now)
        lead_id = self._store.insert(payload)
        self.session.lead_id = lead_id
        return LeadSaveResult(LeadSaveOutcome.CREATED, lead_id=lead_id)

    # ------------------------------------------------------------------
    # Debounce / flush
    # ------------------------------------------------------------------

    @property
    def has_pending_save(self) -> bool:
        return self._pending_task is not None and not self._pending_task.done()

    def debounced_save(self, data: LeadData) -> None:
        """
        Schedule a save after the quiet period, replacing any pending one.

        Must be called from a running event loop.
        """

        self._pending_data = data
        self._cancel_pending()
        loop = asyncio.get_running_loop()
        self._pending_task = loop.create_task(self._save_after_quiet_period())

    async def _save_after_quiet_period(self) -> None:
        await asyncio.sleep(self._config.debounce_seconds)
        self._pending_task = None
        if self._pending_data is not None:
            self.save(self._pending_data)

    def flush(self) -> Optional[LeadSaveResult]:
        """
        Save the last pending snapshot now, bypassing debounce and rate limit.

        Called when the customer navigates away. Returns None if nothing was
        ever scheduled.
        """

        self._cancel_pending()
        if self._pending_data is None:
            return None
        return self.save(self._pending_data, force=True)

    def _cancel_pending(self) -> None:
        if self._pending_task is not None and not self._pending_task.done():
            self._pending_task.cancel()
        self._pending_task = None

    def close(self) -> None:
        """Cancel any scheduled save (session torn down)."""

        self._cancel_pending()

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def convert(self, order_id: str) -> Optional[str]:
        """
        Mark the session's lead as converted into `order_id`.

        Only effective when the session holds both lead id and token.
        Returns the converted lead id, or None when there was nothing to convert.
        Persistence errors propagate; the order service treats this as a
        best-effort side effect.
        """

        if not self.session.has_lead:
            return None

        lead_id = self.session.lead_id
        old_token = self.session.lead_token
        assert lead_id is not None

        updated = self._store.mark_converted(lead_id, old_token, order_id, self._clock())

        self._cancel_pending()
        self._pending_data = None
        self.session.clear()
        self._limiter.forget(token_limit_key(old_token))
        if not updated:
            logger.warning(
                "Lead not converted: id and token do not match a stored lead",
                extra={"lead_id": lead_id, "order_id": order_id},
            )
            return None
        logger.info("Lead converted", extra={"lead_id": lead_id, "order_id": order_id})
        return lead_id


__all__ = [
    "LeadCaptureService",
    "LeadSaveOutcome",
    "LeadSaveResult",
    "LeadStore",
]
