"""
Service wiring for the API.

Each provider is a FastAPI dependency so tests can swap in in-memory stores
via `app.dependency_overrides`. Long-lived objects (rate limiter, courier
gateway) are cached per process so their in-memory state is shared between
requests.
"""

from functools import lru_cache

from repositories.client import get_supabase
from repositories.coupon_repository import CouponRepository
from repositories.courier_repository import CourierLogRepository, CourierSettingsRepository
from repositories.lead_repository import CheckoutLeadRepository
from repositories.order_repository import OrderRepository
from repositories.payment_method_repository import PaymentMethodRepository
from services.config import CourierConfig, LeadCaptureConfig
from services.courier_service import CourierGateway
from services.lead_admin_service import LeadAdminService
from services.order_service import OrderAssembler
from services.rate_limiter import SaveRateLimiter


@lru_cache(maxsize=1)
def get_lead_config() -> LeadCaptureConfig:
    return LeadCaptureConfig.from_env()


@lru_cache(maxsize=1)
def get_rate_limiter() -> SaveRateLimiter:
    config = get_lead_config()
    return SaveRateLimiter(
        max_per_window=config.max_saves_per_window,
        window_seconds=config.window_seconds,
        min_interval_seconds=config.min_save_interval_seconds,
    )


def get_lead_store() -> CheckoutLeadRepository:
    return CheckoutLeadRepository(get_supabase())


def get_lead_admin_service() -> LeadAdminService:
    return LeadAdminService(CheckoutLeadRepository(get_supabase()))


def get_order_assembler() -> OrderAssembler:
    client = get_supabase()
    return OrderAssembler(
        orders=OrderRepository(client),
        payment_methods=PaymentMethodRepository(client),
        coupons=CouponRepository(client),
    )


@lru_cache(maxsize=1)
def get_courier_gateway() -> CourierGateway:
    client = get_supabase()
    return CourierGateway(
        orders=OrderRepository(client),
        logs=CourierLogRepository(client),
        settings=CourierSettingsRepository(client),
        config=CourierConfig.from_env(),
    )
