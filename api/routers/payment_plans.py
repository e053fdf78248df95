"""
Payment Plan API Endpoints.

Preview of the advance / due-on-delivery split shown on the checkout page.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_order_assembler
from api.models import PaymentPlanRequest, PaymentPlanResponse
from services.order_service import OrderAssembler, OrderValidationError

router = APIRouter()


@router.post(
    "/payment-plans",
    response_model=PaymentPlanResponse,
    summary="Calculate Payment Plan",
    description="Split an order total into an advance payment and an amount due on delivery."
)
def calculate_plan(
    request: PaymentPlanRequest,
    assembler: OrderAssembler = Depends(get_order_assembler),
):
    """
    Calculate the payment plan for a payment method.

    **Rules:**
    - total = subtotal - discount + shipping_cost (never negative)
    - `delivery_charge` methods take the shipping cost in advance
    - `fixed_amount` methods take a fixed advance, capped at the total
    - otherwise the whole total is due on delivery

    **Example request:**
    ```json
    {
      "payment_method_code": "bkash",
      "subtotal": "1500.00",
      "shipping_cost": "120.00"
    }
    ```
    """
    try:
        plan = assembler.quote(
            request.payment_method_code,
            request.subtotal,
            request.shipping_cost,
            request.discount,
        )
    except OrderValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to calculate payment plan: {str(e)}"
        )

    return PaymentPlanResponse(
        subtotal=plan.subtotal,
        discount=plan.discount,
        shipping_cost=plan.shipping_cost,
        total=plan.total,
        advance_amount=plan.advance_amount,
        due_on_delivery=plan.due_on_delivery,
        payment_status=plan.payment_status.value,
    )
