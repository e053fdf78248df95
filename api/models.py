"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from domain.order import OrderStatus


# ============================================================================
# Payment Plan Models
# ============================================================================

class PaymentPlanRequest(BaseModel):
    """Request to preview the payment split for a payment method."""
    payment_method_code: str = Field(..., min_length=1)
    subtotal: Decimal = Field(..., ge=0)
    shipping_cost: Decimal = Field(Decimal("0"), ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "payment_method_code": "bkash",
                "subtotal": "1500.00",
                "shipping_cost": "120.00",
                "discount": "0.00"
            }
        }


class PaymentPlanResponse(BaseModel):
    """Payment split: what is paid up front and what is collected on delivery."""
    subtotal: Decimal
    discount: Decimal
    shipping_cost: Decimal
    total: Decimal
    advance_amount: Decimal
    due_on_delivery: Decimal
    payment_status: str

    class Config:
        json_schema_extra = {
            "example": {
                "subtotal": "1500.00",
                "discount": "0.00",
                "shipping_cost": "120.00",
                "total": "1620.00",
                "advance_amount": "120.00",
                "due_on_delivery": "1500.00",
                "payment_status": "partial_paid"
            }
        }


# ============================================================================
# Lead Models
# ============================================================================

class LeadItemModel(BaseModel):
    product_id: str
    product_name: str
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    line_total: Decimal = Field(..., ge=0)


class LeadSaveRequest(BaseModel):
    """Checkout snapshot plus the session's correlation state."""
    lead_token: Optional[str] = Field(None, description="Session token; omitted on the first save")
    lead_id: Optional[str] = None
    phone: str = ""
    customer_name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    notes: Optional[str] = None
    items: List[LeadItemModel] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    shipping_fee: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    currency_code: str = "BDT"
    page_url: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    user_agent: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "lead_token": "4f1c2b1e-8a0e-4d2a-9d55-0a8f6f3f2c11",
                "lead_id": None,
                "phone": "01712345678",
                "customer_name": "Rahim Uddin",
                "city": "Dhaka",
                "items": [
                    {
                        "product_id": "p-100",
                        "product_name": "Cotton Panjabi",
                        "unit_price": "1500.00",
                        "quantity": 1,
                        "line_total": "1500.00"
                    }
                ],
                "subtotal": "1500.00",
                "shipping_fee": "120.00",
                "total": "1620.00",
                "utm_source": "facebook"
            }
        }


class LeadSaveResponse(BaseModel):
    outcome: str
    saved: bool
    lead_id: Optional[str] = None
    lead_token: str
    message: Optional[str] = None


class LeadConvertRequest(BaseModel):
    lead_id: str
    lead_token: str
    order_id: str


class LeadConvertResponse(BaseModel):
    converted: bool
    lead_id: Optional[str] = None
    lead_token: str = Field(..., description="Fresh session token to use from now on")


class LeadResponse(BaseModel):
    """Lead row as shown in the admin console."""
    id: str
    lead_no: Optional[str] = None
    status: str
    source: str
    phone: str
    customer_name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    items: List[LeadItemModel]
    subtotal: Decimal
    shipping_fee: Decimal
    total: Decimal
    currency_code: str
    utm_source: Optional[str] = None
    utm_campaign: Optional[str] = None
    created_at: datetime
    last_activity_at: datetime
    converted_order_id: Optional[str] = None


class LeadListResponse(BaseModel):
    items: List[LeadResponse]
    total_count: int
    filters_applied: dict


class LeadStatusUpdateRequest(BaseModel):
    status: str = Field(..., description="new, contacted, converted or invalid")

    class Config:
        json_schema_extra = {"example": {"status": "contacted"}}


# ============================================================================
# Order Models
# ============================================================================

class CartLineModel(BaseModel):
    product_id: str
    product_name: str
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    product_image: Optional[str] = None
    variant_id: Optional[str] = None
    variant_info: Optional[Dict[str, Any]] = None


class CustomerModel(BaseModel):
    name: str
    phone: str
    address: str
    city: str
    email: Optional[str] = None
    country: Optional[str] = None
    notes: Optional[str] = None


class PlaceOrderRequest(BaseModel):
    """Checkout submission."""
    customer: CustomerModel
    items: List[CartLineModel] = Field(..., min_length=1)
    payment_method_code: str
    shipping_cost: Decimal = Field(Decimal("0"), ge=0)
    shipping_method: Optional[str] = None
    transaction_id: Optional[str] = None
    coupon_code: Optional[str] = None
    lead_id: Optional[str] = None
    lead_token: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "customer": {
                    "name": "Rahim Uddin",
                    "phone": "01712345678",
                    "address": "House 12, Road 5, Dhanmondi",
                    "city": "Dhaka"
                },
                "items": [
                    {
                        "product_id": "p-100",
                        "product_name": "Cotton Panjabi",
                        "price": "1500.00",
                        "quantity": 1
                    }
                ],
                "payment_method_code": "cod",
                "shipping_cost": "120.00",
                "lead_id": "9d1f7a5c-3e0b-4f4e-bb8e-0c6a1d2e3f40",
                "lead_token": "4f1c2b1e-8a0e-4d2a-9d55-0a8f6f3f2c11"
            }
        }


class OrderItemResponse(BaseModel):
    product_id: Optional[str] = None
    product_name: str
    price: Decimal
    quantity: int
    line_total: Decimal


class CourierParcelResponse(BaseModel):
    status: str
    provider: Optional[str] = None
    tracking_id: Optional[str] = None
    consignment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    status: str
    customer_name: str
    customer_phone: str
    shipping_address: str
    shipping_city: str
    payment_method: str
    subtotal: Decimal
    discount: Decimal
    shipping_cost: Decimal
    total: Decimal
    payment_status: str
    paid_amount: Decimal
    due_amount: Decimal
    coupon_code: Optional[str] = None
    created_at: datetime
    items: List[OrderItemResponse]
    courier: CourierParcelResponse


class PlaceOrderResponse(BaseModel):
    success: bool
    order: OrderResponse
    lead_converted: bool
    lead_token: Optional[str] = Field(None, description="Fresh session token after conversion")
    warnings: List[str]

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "order": {"order_number": "ORD-73410932", "total": "1620.00"},
                "lead_converted": True,
                "lead_token": "a3c5e0f2-0d3b-4a0e-9f3c-52c1a3b4d5e6",
                "warnings": []
            }
        }


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus = Field(..., description="pending, processing, shipped, delivered or cancelled")

    class Config:
        json_schema_extra = {"example": {"status": "processing"}}


# ============================================================================
# Courier Models
# ============================================================================

class ParcelRequestModel(BaseModel):
    note: Optional[str] = Field(None, description="Delivery note; defaults to the order notes")


class TrackResponse(BaseModel):
    status: str
    provider_status: str
    changed: bool
    order_status: str


class ConnectionTestResponse(BaseModel):
    ok: bool
    provider: str
    details: dict
