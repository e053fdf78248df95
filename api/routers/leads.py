"""
Lead Capture API Endpoints.

Checkout-facing endpoints for saving in-progress checkout snapshots. The
client holds the session (lead_token + lead_id) and sends it with every call;
debouncing happens client-side, the server enforces the rate limit.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_lead_config, get_lead_store, get_rate_limiter
from api.models import (
    LeadConvertRequest,
    LeadConvertResponse,
    LeadSaveRequest,
    LeadSaveResponse,
)
from domain.lead import LeadAttribution, LeadData, LeadItem, LeadSession
from services.config import LeadCaptureConfig
from services.lead_capture_service import LeadCaptureService, LeadStore
from services.rate_limiter import SaveRateLimiter

router = APIRouter()


def build_lead_service(
    lead_token,
    lead_id,
    store: LeadStore,
    config: LeadCaptureConfig,
    limiter: SaveRateLimiter,
) -> LeadCaptureService:
    """Rebuild the session-scoped service from the client's correlation state."""

    session = LeadSession(lead_token=lead_token, lead_id=lead_id) if lead_token else LeadSession()
    return LeadCaptureService(store, session=session, config=config, limiter=limiter)


def _to_lead_data(request: LeadSaveRequest) -> LeadData:
    return LeadData(
        phone=request.phone,
        items=[
            LeadItem(
                product_id=item.product_id,
                product_name=item.product_name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                line_total=item.line_total,
            )
            for item in request.items
        ],
        subtotal=request.subtotal,
        shipping_fee=request.shipping_fee,
        total=request.total,
        currency_code=request.currency_code,
        customer_name=request.customer_name,
        email=request.email,
        address=request.address,
        city=request.city,
        country=request.country,
        notes=request.notes,
        attribution=LeadAttribution(
            page_url=request.page_url,
            utm_source=request.utm_source,
            utm_medium=request.utm_medium,
            utm_campaign=request.utm_campaign,
            user_agent=request.user_agent,
        ),
    )


def _save(request: LeadSaveRequest, force: bool, store, config, limiter) -> LeadSaveResponse:
    service = build_lead_service(request.lead_token, request.lead_id, store, config, limiter)
    result = service.save(_to_lead_data(request), force=force)
    return LeadSaveResponse(
        outcome=result.outcome.value,
        saved=result.saved,
        lead_id=result.lead_id or service.session.lead_id,
        lead_token=service.session.lead_token,
        message=result.message,
    )


@router.post(
    "/leads",
    response_model=LeadSaveResponse,
    summary="Save Checkout Lead",
    description="Store a checkout snapshot. Rate-limited per session; never fails the checkout."
)
def save_lead(
    request: LeadSaveRequest,
    store: LeadStore = Depends(get_lead_store),
    config: LeadCaptureConfig = Depends(get_lead_config),
    limiter: SaveRateLimiter = Depends(get_rate_limiter),
):
    """
    Save a checkout snapshot.

    **Process:**
    1. Snapshots without a usable phone (min 5 characters) are rejected
    2. Saves over the per-session rate limit are skipped
    3. A session that already owns a lead updates it in place
    4. Otherwise a recent open lead with the same phone is reused
    5. Otherwise a new lead is created

    The response always carries the session's `lead_token` and, once known,
    its `lead_id`. The client must send both back on the next call.

    Persistence problems are reported as `outcome: "failed"`, never as an HTTP
    error, so the checkout page can ignore them.
    """
    return _save(request, False, store, config, limiter)


@router.post(
    "/leads/flush",
    response_model=LeadSaveResponse,
    summary="Flush Checkout Lead",
    description="Forced save on navigation-away. Bypasses the rate limit."
)
def flush_lead(
    request: LeadSaveRequest,
    store: LeadStore = Depends(get_lead_store),
    config: LeadCaptureConfig = Depends(get_lead_config),
    limiter: SaveRateLimiter = Depends(get_rate_limiter),
):
    return _save(request, True, store, config, limiter)


@router.post(
    "/leads/convert",
    response_model=LeadConvertResponse,
    summary="Convert Checkout Lead",
    description="Mark the session's lead as converted into an order."
)
def convert_lead(
    request: LeadConvertRequest,
    store: LeadStore = Depends(get_lead_store),
    config: LeadCaptureConfig = Depends(get_lead_config),
    limiter: SaveRateLimiter = Depends(get_rate_limiter),
):
    """
    Convert the session's lead.

    Requires both `lead_id` and `lead_token`. Returns a fresh `lead_token` the
    client should use for any later checkout.
    """
    service = build_lead_service(request.lead_token, request.lead_id, store, config, limiter)
    try:
        lead_id = service.convert(request.order_id)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to convert lead: {str(e)}"
        )
    return LeadConvertResponse(
        converted=lead_id is not None,
        lead_id=lead_id,
        lead_token=service.session.lead_token,
    )
