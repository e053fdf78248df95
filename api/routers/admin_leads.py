"""
Lead Admin API Endpoints.

Staff endpoints for working through captured checkout leads.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from api.models import LeadItemModel, LeadListResponse, LeadResponse, LeadStatusUpdateRequest
from api.dependencies import get_lead_admin_service
from domain.lead import CheckoutLead, LeadStatus
from repositories.lead_repository import DEFAULT_LIST_LIMIT, LeadFilters
from services.lead_admin_service import LeadAdminService, LeadNotFoundError

router = APIRouter()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Naive query values are taken as UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _parse_status(value: str) -> LeadStatus:
    try:
        return LeadStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in LeadStatus)
        raise HTTPException(
            status_code=422,
            detail=f"Invalid status '{value}'. Must be one of: {allowed}"
        )


def _lead_response(lead: CheckoutLead) -> LeadResponse:
    return LeadResponse(
        id=lead.id,
        lead_no=lead.lead_no,
        status=lead.status.value,
        source=lead.source,
        phone=lead.phone,
        customer_name=lead.customer_name,
        email=lead.email,
        address=lead.address,
        city=lead.city,
        items=[
            LeadItemModel(
                product_id=item.product_id,
                product_name=item.product_name,
                unit_price=item.unit_price,
                quantity=max(item.quantity, 1),
                line_total=item.line_total,
            )
            for item in lead.items
        ],
        subtotal=lead.subtotal,
        shipping_fee=lead.shipping_fee,
        total=lead.total,
        currency_code=lead.currency_code,
        utm_source=lead.attribution.utm_source,
        utm_campaign=lead.attribution.utm_campaign,
        created_at=lead.created_at,
        last_activity_at=lead.last_activity_at,
        converted_order_id=lead.converted_order_id,
    )


@router.get(
    "/admin/leads",
    response_model=LeadListResponse,
    summary="List Checkout Leads",
    description="Recent checkout leads, newest first, with optional status, search and date filters."
)
def list_leads(
    status: Optional[str] = Query(None, description="Filter by status (new, contacted, converted, invalid)"),
    search: Optional[str] = Query(None, description="Match phone, customer name or lead number"),
    created_from: Optional[datetime] = Query(None, description="Created at or after (UTC)"),
    created_to: Optional[datetime] = Query(None, description="Created at or before (UTC)"),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=500, description="Maximum number of results to return"),
    service: LeadAdminService = Depends(get_lead_admin_service),
):
    """
    **Example usage:**
    - Open leads: `GET /api/v1/admin/leads?status=new`
    - Search by phone: `GET /api/v1/admin/leads?search=01712`
    """
    filters = LeadFilters(
        status=_parse_status(status) if status else None,
        search=search.strip() if search and search.strip() else None,
        created_from=_as_utc(created_from),
        created_to=_as_utc(created_to),
        limit=limit,
    )
    try:
        leads = service.list_leads(filters)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list leads: {str(e)}"
        )

    filters_applied = {}
    if status:
        filters_applied["status"] = status
    if filters.search:
        filters_applied["search"] = filters.search
    if created_from:
        filters_applied["created_from"] = filters.created_from.isoformat()
    if created_to:
        filters_applied["created_to"] = filters.created_to.isoformat()

    items = [_lead_response(lead) for lead in leads]
    return LeadListResponse(items=items, total_count=len(items), filters_applied=filters_applied)


@router.get(
    "/admin/leads/new-count",
    summary="Count New Leads",
    description="Number of leads still in status 'new' (dashboard badge)."
)
def count_new_leads(service: LeadAdminService = Depends(get_lead_admin_service)):
    try:
        return {"count": service.count_new_leads()}
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to count leads: {str(e)}"
        )


@router.patch(
    "/admin/leads/{lead_id}",
    summary="Update Lead Status",
    description="Move a lead between new, contacted and invalid."
)
def update_lead_status(
    lead_id: str,
    request: LeadStatusUpdateRequest,
    service: LeadAdminService = Depends(get_lead_admin_service),
):
    status = _parse_status(request.status)
    try:
        service.update_status(lead_id, status)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to update lead: {str(e)}"
        )
    return {"id": lead_id, "status": status.value}


@router.delete(
    "/admin/leads/{lead_id}",
    status_code=204,
    summary="Delete Lead",
    response_class=Response
)
def delete_lead(lead_id: str, service: LeadAdminService = Depends(get_lead_admin_service)):
    try:
        service.delete_lead(lead_id)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to delete lead: {str(e)}"
        )
    return Response(status_code=204)
