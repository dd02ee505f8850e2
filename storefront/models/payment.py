"""Модель платежа."""
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import String, Text, Numeric, Integer, ForeignKey, JSON, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.core.timeutils import utcnow
from storefront.database import Base

if TYPE_CHECKING:
    from storefront.models.order import Order


class Payment(Base):
    """Попытка оплаты заказа.

    На один заказ может приходиться несколько записей: каждая повторная
    попытка создаёт новую запись, старая остаётся в своём терминальном
    статусе. Поля status, status_source, paid_at, failed_at, webhook_data и
    version пишет только PaymentRecordStore.update_status.
    """

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    payment_method: Mapped[str] = mapped_column(String, nullable=False)  # pix / credit_card / boleto
    payment_provider: Mapped[str] = mapped_column(String, nullable=False, default="abacatepay")
    external_payment_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    # Сумма хранится как пришла, в основных единицах (без округления до центов)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="BRL")

    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")  # pending / paid / failed / expired
    status_source: Mapped[str] = mapped_column(String, nullable=False, default="provider")  # provider / local
    # Растёт на каждую запись через update_status
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # PIX
    pix_qr_code: Mapped[str | None] = mapped_column(Text, nullable=True)
    pix_qr_code_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Boleto
    boleto_url: Mapped[str | None] = mapped_column(String, nullable=True)
    boleto_barcode: Mapped[str | None] = mapped_column(String, nullable=True)
    # Cartão
    card_last4: Mapped[str | None] = mapped_column(String(4), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String, nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Непрозрачные данные для аудита, бизнес-логика их не разбирает
    customer_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payment_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    webhook_data: Mapped[list | None] = mapped_column(JSON, nullable=True, default=list)

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    order: Mapped["Order"] = relationship("Order", back_populates="payments")
