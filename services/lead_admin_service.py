"""
Lead administration service.

Staff-facing operations on captured checkout leads: listing with filters, the
"new leads" badge count, status changes and deletion. Unlike lead capture,
errors here propagate to the caller.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from domain.lead import CheckoutLead, LeadStatus
from domain.time import Clock, utc_now
from repositories.lead_repository import LeadFilters

logger = logging.getLogger(__name__)


class LeadNotFoundError(LookupError):
    """Raised when an admin action targets a lead that does not exist."""


class LeadAdminStore(Protocol):
    def list_leads(self, filters: LeadFilters) -> List[CheckoutLead]: ...

    def count_by_status(self, status: LeadStatus) -> int: ...

    def update_status(self, lead_id: str, status: LeadStatus, updated_at) -> int: ...

    def delete(self, lead_id: str) -> int: ...

    def get(self, lead_id: str) -> Optional[CheckoutLead]: ...


class LeadAdminService:
    def __init__(self, store: LeadAdminStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def list_leads(self, filters: Optional[LeadFilters] = None) -> List[CheckoutLead]:
        return self._store.list_leads(filters or LeadFilters())

    def count_new_leads(self) -> int:
        return self._store.count_by_status(LeadStatus.NEW)

    def update_status(self, lead_id: str, status: LeadStatus) -> None:
        """
        Set a lead's status from the admin console.

        Converted leads are owned by the checkout flow and cannot be moved back.
        """

        lead = self._store.get(lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead not found: {lead_id}")
        if lead.is_converted and status is not LeadStatus.CONVERTED:
            raise ValueError("Converted leads cannot change status")

        self._store.update_status(lead_id, status, self._clock())
        logger.info("Lead status updated", extra={"lead_id": lead_id, "status": status.value})

    def delete_lead(self, lead_id: str) -> None:
        if not self._store.delete(lead_id):
            raise LeadNotFoundError(f"Lead not found: {lead_id}")
        logger.info("Lead deleted", extra={"lead_id": lead_id})


__all__ = ["LeadAdminService", "LeadNotFoundError"]
