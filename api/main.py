"""
Order Lifecycle API - Main Application.

FastAPI application serving the checkout (leads, payment plans, orders) and
the admin console (lead follow-up, courier parcels).
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from services.config import cors_origins

# Create FastAPI application
app = FastAPI(
    title="Order Lifecycle API",
    description="Checkout lead capture, payment plans, order placement and courier fulfillment",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Storefront and admin origins come from CORS_ALLOW_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "order-lifecycle-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint listing the API areas.
    """
    return {
        "message": "Order Lifecycle API",
        "version": __version__,
        "areas": {
            "checkout": ["/api/v1/leads", "/api/v1/payment-plans", "/api/v1/orders"],
            "admin": ["/api/v1/admin/leads", "/api/v1/orders/{order_id}/courier"],
        },
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import admin_leads, courier, leads, orders, payment_plans

app.include_router(payment_plans.router, prefix="/api/v1", tags=["Payment Plans"])
app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
app.include_router(admin_leads.router, prefix="/api/v1", tags=["Lead Admin"])
app.include_router(orders.router, prefix="/api/v1", tags=["Orders"])
app.include_router(courier.router, prefix="/api/v1", tags=["Courier"])
