"""
Tests for `services/lead_admin_service.py`.
"""

from __future__ import annotations

import pytest

from domain.lead import LeadData, LeadStatus
from repositories.lead_repository import LeadFilters
from services.lead_admin_service import LeadAdminService, LeadNotFoundError
from services.lead_capture_service import LeadCaptureService


@pytest.fixture
def admin(lead_store, clock) -> LeadAdminService:
    return LeadAdminService(lead_store, clock=clock)


def capture(lead_store, clock, phone: str, name: str) -> str:
    return LeadCaptureService(lead_store, clock=clock).save(LeadData(phone=phone, customer_name=name)).lead_id


def test_list_newest_first_with_filters(admin, lead_store, clock) -> None:
    first = capture(lead_store, clock, "01711111111", "Rahim")
    clock.advance(minutes=5)
    second = capture(lead_store, clock, "01822222222", "Karim")
    clock.advance(minutes=5)
    capture(lead_store, clock, "01933333333", "Salma")
    admin.update_status(first, LeadStatus.CONTACTED)

    assert [lead.id for lead in admin.list_leads()][-2:] == [second, first]
    assert [lead.id for lead in admin.list_leads(LeadFilters(status=LeadStatus.CONTACTED))] == [first]
    assert [lead.id for lead in admin.list_leads(LeadFilters(search="karim"))] == [second]
    assert len(admin.list_leads(LeadFilters(limit=2))) == 2


def test_count_new_leads(admin, lead_store, clock) -> None:
    first = capture(lead_store, clock, "01711111111", "Rahim")
    capture(lead_store, clock, "01822222222", "Karim")
    admin.update_status(first, LeadStatus.INVALID)

    assert admin.count_new_leads() == 1


def test_converted_lead_cannot_be_reopened(admin, lead_store, clock) -> None:
    service = LeadCaptureService(lead_store, clock=clock)
    lead_id = service.save(LeadData(phone="01711111111")).lead_id
    service.convert("order-1")

    with pytest.raises(ValueError):
        admin.update_status(lead_id, LeadStatus.NEW)


def test_missing_lead(admin) -> None:
    with pytest.raises(LeadNotFoundError):
        admin.update_status("missing", LeadStatus.CONTACTED)
    with pytest.raises(LeadNotFoundError):
        admin.delete_lead("missing")


def test_delete_lead(admin, lead_store, clock) -> None:
    lead_id = capture(lead_store, clock, "01711111111", "Rahim")

    admin.delete_lead(lead_id)

    assert lead_store.get(lead_id) is None
