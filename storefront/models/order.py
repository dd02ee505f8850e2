"""Модели заказов."""
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import String, Text, Numeric, ForeignKey, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.core.timeutils import utcnow
from storefront.database import Base

if TYPE_CHECKING:
    from storefront.models.payment import Payment


class Order(Base):
    """Модель заказа."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    session_id: Mapped[str | None] = mapped_column(String, nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    shipping_address: Mapped[str] = mapped_column(Text, nullable=False)
    shipping_city: Mapped[str] = mapped_column(String, nullable=False)
    shipping_state: Mapped[str] = mapped_column(String, nullable=False)
    shipping_postal_code: Mapped[str] = mapped_column(String, nullable=False)
    shipping_country: Mapped[str] = mapped_column(String, default="Brasil")
    shipping_method: Mapped[str | None] = mapped_column(String, nullable=True)

    status: Mapped[str] = mapped_column(String, default="pending")  # pending / paid / payment_failed / payment_expired / shipped
    payment_status: Mapped[str] = mapped_column(String, default="pending")  # pending / paid / failed / expired
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)  # pix / credit_card / boleto
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    items: Mapped[list["OrderItem"]] = relationship("OrderItem", back_populates="order", lazy="selectin")
    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="order", lazy="selectin")


class OrderItem(Base):
    """Модель элемента заказа.

    Имя и цена фиксируются в момент оформления и больше не читаются из
    каталога.
    """

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[int] = mapped_column(nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")
