"""
Courier API Endpoints.

Staff actions on an order's courier parcel: create, recreate, refresh status,
read the audit trail, and a credentials check for the settings page.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_courier_gateway
from api.models import ConnectionTestResponse, CourierParcelResponse, ParcelRequestModel, TrackResponse
from domain.courier import CourierParcel
from services.courier_service import (
    CourierGateway,
    CourierNotConfiguredError,
    CourierProviderError,
    ParcelAlreadyExistsError,
    ParcelNotFoundError,
)
from services.order_service import OrderNotFoundError

router = APIRouter()


def _raise_http(error: Exception, action: str):
    """Map courier service errors onto HTTP responses."""

    if isinstance(error, OrderNotFoundError):
        raise HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (ParcelAlreadyExistsError, ParcelNotFoundError)):
        raise HTTPException(status_code=409, detail=str(error))
    if isinstance(error, CourierNotConfiguredError):
        raise HTTPException(status_code=503, detail=str(error))
    if isinstance(error, CourierProviderError):
        raise HTTPException(status_code=502, detail=f"Courier provider error: {error.message}")
    raise HTTPException(status_code=500, detail=f"Failed to {action}: {str(error)}")


def _parcel_response(parcel: CourierParcel) -> CourierParcelResponse:
    return CourierParcelResponse(
        status=parcel.status.value,
        provider=parcel.provider,
        tracking_id=parcel.tracking_id,
        consignment_id=parcel.consignment_id,
        created_at=parcel.created_at,
        updated_at=parcel.updated_at,
    )


@router.post(
    "/orders/{order_id}/courier/parcel",
    status_code=201,
    response_model=CourierParcelResponse,
    summary="Create Courier Parcel",
    description="Send the order to the courier provider. Refused if the order already has a parcel."
)
def create_parcel(
    order_id: str,
    request: Optional[ParcelRequestModel] = None,
    gateway: CourierGateway = Depends(get_courier_gateway),
):
    """
    Create the order's parcel with the courier provider.

    **Payload sent to the provider:**
    - invoice: the order number
    - recipient name, phone, "address, city"
    - cod_amount: order total for cash-on-delivery orders, otherwise 0
    - note: request note, or the order notes

    Every attempt (success or failure) is written to the courier audit log.
    """
    note = request.note if request is not None else None
    try:
        return _parcel_response(gateway.create_parcel(order_id, note=note))
    except Exception as e:
        _raise_http(e, "create parcel")


@router.post(
    "/orders/{order_id}/courier/recreate",
    status_code=201,
    response_model=CourierParcelResponse,
    summary="Recreate Courier Parcel",
    description="Issue a new parcel. The previous parcel is NOT cancelled with the provider."
)
def recreate_parcel(
    order_id: str,
    request: Optional[ParcelRequestModel] = None,
    gateway: CourierGateway = Depends(get_courier_gateway),
):
    note = request.note if request is not None else None
    try:
        return _parcel_response(gateway.recreate_parcel(order_id, note=note))
    except Exception as e:
        _raise_http(e, "recreate parcel")


@router.post(
    "/orders/{order_id}/courier/track",
    response_model=TrackResponse,
    summary="Refresh Parcel Status",
    description="Fetch the current delivery status from the provider and update the order."
)
def track_parcel(order_id: str, gateway: CourierGateway = Depends(get_courier_gateway)):
    try:
        result = gateway.track_parcel(order_id)
    except Exception as e:
        _raise_http(e, "track parcel")
    return TrackResponse(
        status=result.status.value,
        provider_status=result.provider_status,
        changed=result.changed,
        order_status=result.order_status.value,
    )


@router.get(
    "/orders/{order_id}/courier/logs",
    summary="Courier Audit Trail",
    description="All provider requests and responses recorded for the order, oldest first."
)
def courier_logs(order_id: str, gateway: CourierGateway = Depends(get_courier_gateway)):
    try:
        return {"items": gateway.audit_trail(order_id)}
    except Exception as e:
        _raise_http(e, "fetch courier logs")


@router.get(
    "/courier/test-connection",
    response_model=ConnectionTestResponse,
    summary="Test Courier Connection",
    description="Check the stored courier credentials against the provider."
)
def test_connection(gateway: CourierGateway = Depends(get_courier_gateway)):
    try:
        details = gateway.test_connection()
    except Exception as e:
        _raise_http(e, "test courier connection")
    return ConnectionTestResponse(ok=True, provider=gateway.provider, details=details)
