"""Webhooks API."""
import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from storefront.config import Settings
from storefront.core.dependencies import get_payment_service, get_settings
from storefront.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/abacatepay")
async def abacatepay_webhook(
    request: Request,
    webhook_secret: str | None = Query(default=None, alias="webhookSecret"),
    settings: Settings = Depends(get_settings),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Webhook для обработки событий от AbacatePay.

    Подлинность проверяется общим секретом в query-параметре webhookSecret,
    который мы сами вшили в webhook_url при создании платежа. Повторная
    доставка того же события безопасна.
    """
    if not settings.abacatepay_webhook_secret:
        logger.error("ABACATEPAY_WEBHOOK_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    if not webhook_secret or not hmac.compare_digest(
        webhook_secret.encode(), settings.abacatepay_webhook_secret.encode()
    ):
        logger.error("Invalid webhook secret received")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )

    try:
        event = await request.json()
    except ValueError as e:
        logger.error(f"Failed to parse webhook JSON: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON",
        )

    if not isinstance(event, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON",
        )

    update = await service.process_webhook(event)

    if update:
        return {
            "message": "Webhook processed successfully",
            "status": update.payment.status,
            "outcome": update.outcome.value,
        }
    return {"message": "Event processed"}
