"""Типы платёжного контура."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PaymentMethod(str, Enum):
    PIX = "pix"
    CREDIT_CARD = "credit_card"
    BOLETO = "boleto"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class StatusSource(str, Enum):
    """Откуда пришёл статус: от провайдера или выведен локально по таймеру."""

    PROVIDER = "provider"
    LOCAL = "local"


class CamelModel(BaseModel):
    """Модель, принимающая и camelCase (фронтенд), и snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CustomerInfo(CamelModel):
    """Данные покупателя. document (CPF) обязателен только для boleto."""

    name: str | None = None
    email: str | None = None
    document: str | None = None
    phone: str | None = None


class CardDetails(CamelModel):
    """Данные карты. Никогда не сохраняются и не логируются целиком."""

    number: str | None = None
    holder_name: str | None = None
    exp_month: str | None = None
    exp_year: str | None = None
    cvv: str | None = None

    @property
    def last4(self) -> str:
        digits = "".join((self.number or "").split())
        return digits[-4:]


class PixDetails(BaseModel):
    method: Literal["pix"] = "pix"
    qr_code_text: str | None = None
    qr_code_image: str | None = None  # data URL или URL картинки от провайдера


class BoletoDetails(BaseModel):
    method: Literal["boleto"] = "boleto"
    boleto_url: str | None = None
    boleto_barcode: str | None = None


class CardPaymentDetails(BaseModel):
    method: Literal["credit_card"] = "credit_card"
    card_last4: str | None = None
    transaction_id: str | None = None


PaymentDetails = Annotated[
    Union[PixDetails, BoletoDetails, CardPaymentDetails],
    Field(discriminator="method"),
]


class PaymentIntent(BaseModel):
    """Платёж на стороне провайдера.

    Поля, специфичные для метода оплаты, лежат в details (размеченное
    объединение по method). raw хранит ответ провайдера как есть, только
    для аудита.
    """

    external_id: str
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    expires_at: datetime | None = None
    details: PaymentDetails
    raw: dict[str, Any] = Field(default_factory=dict)
