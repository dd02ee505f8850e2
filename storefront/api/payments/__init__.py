"""Payments API (AbacatePay)."""
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status

from storefront.core.dependencies import get_payment_service
from storefront.services.payment_service import PaymentService
from storefront.services.payment_types import (
    CamelModel,
    CardDetails,
    CustomerInfo,
    PaymentMethod,
)

router = APIRouter()


class CreatePaymentRequest(CamelModel):
    """Запрос на создание платежа. Обязательность полей проверяет шлюз."""

    amount: Decimal | None = None
    order_id: int | None = None
    customer_info: CustomerInfo | None = None


class CreateCardPaymentRequest(CreatePaymentRequest):
    card_details: CardDetails | None = None


class PixPaymentResponse(CamelModel):
    id: str
    qr_code: str
    qr_code_text: str
    amount: float
    status: str
    expires_at: datetime | None = None


class BoletoPaymentResponse(CamelModel):
    id: str
    amount: float
    status: str
    boleto_url: str
    boleto_barcode: str
    expires_at: datetime | None = None


class CardPaymentResponse(CamelModel):
    id: str
    amount: float
    status: str
    card_last4: str
    transaction_id: str


class PaymentStatusResponse(CamelModel):
    status: str
    source: str


@router.post("/create", response_model=PixPaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_pix_payment(
    request: CreatePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Создать PIX-платёж.

    Возвращает QR-код (картинка и текст «copia e cola») и срок действия.
    """
    intent = await service.create_payment(
        amount=request.amount,
        order_id=request.order_id,
        method=PaymentMethod.PIX,
        customer_info=request.customer_info,
    )
    details = intent.details
    return PixPaymentResponse(
        id=intent.external_id,
        qr_code=details.qr_code_image or "",
        qr_code_text=details.qr_code_text or "",
        amount=float(intent.amount),
        status=intent.status.value,
        expires_at=intent.expires_at,
    )


@router.post("/create-boleto", response_model=BoletoPaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_boleto_payment(
    request: CreatePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Создать boleto. Нужны имя, email и CPF покупателя."""
    intent = await service.create_payment(
        amount=request.amount,
        order_id=request.order_id,
        method=PaymentMethod.BOLETO,
        customer_info=request.customer_info,
    )
    details = intent.details
    return BoletoPaymentResponse(
        id=intent.external_id,
        amount=float(intent.amount),
        status=intent.status.value,
        boleto_url=details.boleto_url or "",
        boleto_barcode=details.boleto_barcode or "",
        expires_at=intent.expires_at,
    )


@router.post("/create-card", response_model=CardPaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_card_payment(
    request: CreateCardPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Создать платёж картой."""
    intent = await service.create_payment(
        amount=request.amount,
        order_id=request.order_id,
        method=PaymentMethod.CREDIT_CARD,
        customer_info=request.customer_info,
        card_details=request.card_details,
    )
    details = intent.details
    return CardPaymentResponse(
        id=intent.external_id,
        amount=float(intent.amount),
        status=intent.status.value,
        card_last4=details.card_last4 or "",
        transaction_id=details.transaction_id or intent.external_id,
    )


@router.get("/status/{payment_id}", response_model=PaymentStatusResponse)
async def get_payment_status(
    payment_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Текущий статус платежа по нашей записи.

    Статус обновляется webhook'ами провайдера; просроченный pending
    отдаётся как expired с source=local, и провайдер ещё может его перекрыть.
    """
    payment = await service.get_payment(payment_id)
    if payment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Pagamento não encontrado",
        )
    return PaymentStatusResponse(status=payment.status, source=payment.status_source)
