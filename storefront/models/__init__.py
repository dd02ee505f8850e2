"""Модели базы данных."""
from storefront.models.product import Product
from storefront.models.cart import CartItem
from storefront.models.order import Order, OrderItem
from storefront.models.payment import Payment
from storefront.models.user import User

__all__ = [
    "Product",
    "CartItem",
    "Order",
    "OrderItem",
    "Payment",
    "User",
]
