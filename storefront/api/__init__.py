"""API роутеры."""
from fastapi import APIRouter

from storefront.api import payments, webhooks, orders, cart, products, users

router = APIRouter()

# Подключаем все роутеры
router.include_router(payments.router, prefix="/payment/abacatepay", tags=["payments"])
router.include_router(webhooks.router, prefix="/webhook", tags=["webhooks"])
router.include_router(orders.router, prefix="/orders", tags=["orders"])
router.include_router(cart.router, prefix="/cart", tags=["cart"])
router.include_router(products.router, prefix="/products", tags=["products"])
router.include_router(users.router, prefix="/users", tags=["users"])
