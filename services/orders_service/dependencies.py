"""FastAPI dependencies for process-lifetime services."""

from fastapi import Request
from services.orders_service.services.order_builder import (
    FlatShippingRate,
    ShippingRatePolicy,
)
from services.orders_service.xendit_client import XenditClient


def get_xendit_client(request: Request) -> XenditClient:
    """The client built by the app lifespan."""
    return request.app.state.xendit_client


def get_shipping_policy(request: Request) -> ShippingRatePolicy:
    policy = getattr(request.app.state, "shipping_policy", None)
    return policy or FlatShippingRate()
