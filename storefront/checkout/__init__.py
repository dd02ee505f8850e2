"""Клиентская часть оформления заказа: оплата PIX с опросом статуса."""
from storefront.checkout.client import StorefrontClient
from storefront.checkout.flow import CheckoutOrchestrator, ShippingSelection
from storefront.checkout.session import CheckoutState, PixCheckoutSession, TimeRemaining

__all__ = [
    "CheckoutOrchestrator",
    "CheckoutState",
    "PixCheckoutSession",
    "ShippingSelection",
    "StorefrontClient",
    "TimeRemaining",
]
