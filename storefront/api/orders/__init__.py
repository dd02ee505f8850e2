"""Orders API."""
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.dependencies import get_current_user_id, get_session_id
from storefront.database import get_db
from storefront.models.order import Order
from storefront.services.order_service import OrderService
from storefront.services.payment_types import CamelModel, PaymentMethod

router = APIRouter()


class OrderItemRequest(CamelModel):
    """Элемент заказа в запросе."""

    product_id: int
    quantity: int


class ShippingAddressRequest(CamelModel):
    """Адрес доставки."""

    address: str
    city: str
    state: str
    postal_code: str
    country: str | None = None
    method: str | None = None  # Способ доставки, выбранный на шаге checkout


class CreateOrderRequest(CamelModel):
    """Запрос на создание заказа."""

    items: List[OrderItemRequest]
    shipping_address: ShippingAddressRequest
    shipping_cost: Decimal = Decimal("0")
    payment_method: PaymentMethod | None = None


class OrderItemResponse(CamelModel):
    product_id: int
    name: str
    quantity: int
    price: float


class OrderPaymentResponse(CamelModel):
    id: str | None = None
    payment_method: str
    status: str
    amount: float
    expires_at: datetime | None = None
    paid_at: datetime | None = None


class OrderResponse(CamelModel):
    """Ответ с информацией о заказе."""

    id: int
    status: str
    payment_status: str
    payment_method: str | None = None
    subtotal: float
    shipping_cost: float
    total: float
    items: List[OrderItemResponse]
    payments: List[OrderPaymentResponse] = []
    created_at: datetime


def _order_to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        subtotal=float(order.subtotal),
        shipping_cost=float(order.shipping_cost or 0),
        total=float(order.total),
        items=[
            OrderItemResponse(
                product_id=item.product_id,
                name=item.name,
                quantity=item.quantity,
                price=float(item.price),
            )
            for item in order.items
        ],
        payments=[
            OrderPaymentResponse(
                id=payment.external_payment_id,
                payment_method=payment.payment_method,
                status=payment.status,
                amount=float(payment.amount),
                expires_at=payment.expires_at,
                paid_at=payment.paid_at,
            )
            for payment in sorted(order.payments, key=lambda p: p.id, reverse=True)
        ],
        created_at=order.created_at,
    )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_current_user_id),
    session_id: str | None = Depends(get_session_id),
):
    """
    Создать заказ.

    Backend валидирует товары, перечитывает цены из БД и вычисляет итоговую сумму.
    """
    service = OrderService(db)

    try:
        order = await service.create_order(
            items=[
                {"product_id": item.product_id, "quantity": item.quantity}
                for item in request.items
            ],
            shipping=request.shipping_address.model_dump(),
            shipping_cost=request.shipping_cost,
            payment_method=request.payment_method.value if request.payment_method else None,
            user_id=user_id,
            session_id=session_id,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    return _order_to_response(order)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_current_user_id),
    session_id: str | None = Depends(get_session_id),
):
    """Получить заказ вместе с позициями и попытками оплаты."""
    service = OrderService(db)
    order = await service.get_order(order_id)

    if not order or not _is_owner(order, user_id, session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pedido não encontrado",
        )

    return _order_to_response(order)


def _is_owner(order: Order, user_id: int | None, session_id: str | None) -> bool:
    """Чужой заказ отдаём как несуществующий."""
    if order.user_id is not None:
        return order.user_id == user_id
    if order.session_id:
        return order.session_id == session_id
    return True
