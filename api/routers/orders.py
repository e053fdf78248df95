"""
Orders API Endpoints.

Checkout submission, customer order tracking and staff order updates.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_lead_config, get_lead_store, get_order_assembler, get_rate_limiter
from api.models import (
    CourierParcelResponse,
    OrderItemResponse,
    OrderResponse,
    OrderStatusUpdateRequest,
    PlaceOrderRequest,
    PlaceOrderResponse,
)
from api.routers.leads import build_lead_service
from domain.order import CartLine, CustomerDetails, Order
from services.config import LeadCaptureConfig
from services.lead_capture_service import LeadStore
from services.order_service import (
    CheckoutRequest,
    OrderAssembler,
    OrderNotFoundError,
    OrderPersistenceError,
    OrderValidationError,
)
from services.rate_limiter import SaveRateLimiter

router = APIRouter()


def order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        status=order.status.value,
        customer_name=order.customer_name,
        customer_phone=order.customer_phone,
        shipping_address=order.shipping_address,
        shipping_city=order.shipping_city,
        payment_method=order.payment_method,
        subtotal=order.subtotal,
        discount=order.discount,
        shipping_cost=order.shipping_cost,
        total=order.total,
        payment_status=order.payment_status.value,
        paid_amount=order.paid_amount,
        due_amount=order.due_amount,
        coupon_code=order.coupon_code,
        created_at=order.created_at,
        items=[
            OrderItemResponse(
                product_id=item.product_id,
                product_name=item.product_name,
                price=item.price,
                quantity=item.quantity,
                line_total=item.line_total,
            )
            for item in order.items
        ],
        courier=CourierParcelResponse(
            status=order.courier.status.value,
            provider=order.courier.provider,
            tracking_id=order.courier.tracking_id,
            consignment_id=order.courier.consignment_id,
            created_at=order.courier.created_at,
            updated_at=order.courier.updated_at,
        ),
    )


@router.post(
    "/orders",
    status_code=201,
    response_model=PlaceOrderResponse,
    summary="Place Order",
    description="Validate a checkout, compute its payment plan and store the order."
)
def place_order(
    request: PlaceOrderRequest,
    assembler: OrderAssembler = Depends(get_order_assembler),
    lead_store: LeadStore = Depends(get_lead_store),
    lead_config: LeadCaptureConfig = Depends(get_lead_config),
    limiter: SaveRateLimiter = Depends(get_rate_limiter),
):
    """
    Place an order from a checkout submission.

    **Process:**
    1. Validates cart, customer fields, payment method, coupon and transaction id
    2. Computes the payment plan and freezes the payment rule on the order
    3. Stores the order and its line items
    4. Converts the session's lead and records coupon usage (best effort)

    Steps 1-3 fail the request. Failures in step 4 are returned in `warnings`.
    """
    checkout = CheckoutRequest(
        customer=CustomerDetails(
            name=request.customer.name,
            phone=request.customer.phone,
            address=request.customer.address,
            city=request.customer.city,
            email=request.customer.email,
            country=request.customer.country,
            notes=request.customer.notes,
        ),
        items=[
            CartLine(
                product_id=line.product_id,
                product_name=line.product_name,
                price=line.price,
                quantity=line.quantity,
                product_image=line.product_image,
                variant_id=line.variant_id,
                variant_info=line.variant_info,
            )
            for line in request.items
        ],
        payment_method_code=request.payment_method_code,
        shipping_cost=request.shipping_cost,
        shipping_method=request.shipping_method,
        transaction_id=request.transaction_id,
        coupon_code=request.coupon_code,
    )

    lead_capture = None
    if request.lead_id and request.lead_token:
        lead_capture = build_lead_service(
            request.lead_token, request.lead_id, lead_store, lead_config, limiter
        )

    try:
        placed = assembler.place_order(checkout, lead_capture=lead_capture)
    except OrderValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except OrderPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return PlaceOrderResponse(
        success=True,
        order=order_response(placed.order),
        lead_converted=placed.lead_converted,
        lead_token=lead_capture.session.lead_token if lead_capture is not None else None,
        warnings=placed.warnings,
    )


@router.get(
    "/orders/track",
    response_model=OrderResponse,
    summary="Track Order",
    description="Customer lookup of an order by order number and phone."
)
def track_order(
    order_number: str = Query(..., min_length=4),
    phone: str = Query(..., min_length=4),
    assembler: OrderAssembler = Depends(get_order_assembler),
):
    try:
        return order_response(assembler.track_order(order_number, phone))
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch order: {str(e)}"
        )


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    summary="Get Order"
)
def get_order(order_id: str, assembler: OrderAssembler = Depends(get_order_assembler)):
    try:
        return order_response(assembler.get_order(order_id))
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch order: {str(e)}"
        )


@router.patch(
    "/admin/orders/{order_id}/status",
    response_model=OrderResponse,
    summary="Update Order Status",
    description="Set the fulfillment status of an order."
)
def update_order_status(
    order_id: str,
    request: OrderStatusUpdateRequest,
    assembler: OrderAssembler = Depends(get_order_assembler),
):
    try:
        return order_response(assembler.update_status(order_id, request.status))
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrderPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post(
    "/admin/orders/{order_id}/mark-paid",
    response_model=OrderResponse,
    summary="Mark Order Paid",
    description="Record full payment: paid_amount becomes the total and nothing stays due."
)
def mark_order_paid(order_id: str, assembler: OrderAssembler = Depends(get_order_assembler)):
    try:
        return order_response(assembler.mark_paid(order_id))
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrderPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
