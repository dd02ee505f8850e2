"""Клиент платёжного провайдера AbacatePay."""
import logging
import re
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any
from urllib.parse import urlencode

import httpx

from storefront.core.exceptions import ConfigurationError, GatewayError, ValidationError
from storefront.services.payment_types import (
    BoletoDetails,
    CardDetails,
    CardPaymentDetails,
    CustomerInfo,
    PaymentIntent,
    PaymentMethod,
    PaymentStatus,
    PixDetails,
)

logger = logging.getLogger(__name__)

BILLING_ENDPOINT = "/v1/billing"
WEBHOOK_PATH = "/api/webhook/abacatepay"

# Статусы AbacatePay -> наши статусы
_STATUS_MAP = {
    "pending": PaymentStatus.PENDING,
    "paid": PaymentStatus.PAID,
    "failed": PaymentStatus.FAILED,
    "expired": PaymentStatus.EXPIRED,
}


def to_minor_units(amount: Decimal) -> int:
    """Перевести сумму в центы (×100, округление половины от нуля)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def map_provider_status(value: str | None) -> PaymentStatus:
    """Статус провайдера в наш; неизвестные значения считаем pending."""
    return _STATUS_MAP.get((value or "").lower(), PaymentStatus.PENDING)


class AbacatePayGateway:
    """Тонкая обёртка над HTTP API AbacatePay.

    httpx.AsyncClient создаётся один раз при старте процесса и передаётся
    снаружи; шлюз его не закрывает.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        api_url: str = "https://api.abacatepay.com",
        webhook_secret: str = "",
        webhook_base_url: str = "",
        timeout: float = 30.0,
    ):
        self.http_client = http_client
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.webhook_secret = webhook_secret
        self.webhook_base_url = webhook_base_url.rstrip("/")
        self.timeout = timeout

    def build_webhook_url(self) -> str:
        """URL для webhook с общим секретом в query-параметре."""
        query = urlencode({"webhookSecret": self.webhook_secret})
        return f"{self.webhook_base_url}{WEBHOOK_PATH}?{query}"

    @staticmethod
    def validate_request(
        amount: Decimal,
        order_id: Any,
        method: PaymentMethod | str,
        customer_info: CustomerInfo | None = None,
        card_details: CardDetails | None = None,
    ) -> PaymentMethod:
        """Проверить входные данные до обращения к провайдеру.

        Raises:
            ValidationError: с сообщением для покупателя
        """
        try:
            if amount is None or Decimal(amount) <= 0:
                raise ValidationError("Valor inválido")
        except (InvalidOperation, TypeError):
            raise ValidationError("Valor inválido")

        if order_id is None or order_id == "":
            raise ValidationError("ID do pedido é obrigatório")

        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationError("Método de pagamento inválido")

        if method is PaymentMethod.CREDIT_CARD:
            if not card_details or not all(
                [
                    card_details.number,
                    card_details.holder_name,
                    card_details.exp_month,
                    card_details.exp_year,
                    card_details.cvv,
                ]
            ):
                raise ValidationError("Dados do cartão são obrigatórios")

        if method is PaymentMethod.BOLETO:
            if not customer_info or not all(
                [customer_info.name, customer_info.email, customer_info.document]
            ):
                raise ValidationError("Informações do cliente com CPF são obrigatórias para boleto")

        return method

    def build_payload(
        self,
        amount: Decimal,
        order_id: Any,
        method: PaymentMethod,
        customer_info: CustomerInfo | None = None,
        card_details: CardDetails | None = None,
    ) -> dict[str, Any]:
        """Тело запроса POST /v1/billing."""
        customer_dump = customer_info.model_dump(exclude_none=True) if customer_info else {}
        payload: dict[str, Any] = {
            "amount": to_minor_units(amount),  # AbacatePay ждёт сумму в центах
            "currency": "BRL",
            "payment_method": method.value,
            "webhook_url": self.build_webhook_url(),
            "metadata": {
                "orderId": str(order_id),
                "customerInfo": customer_dump,
            },
        }

        if method is PaymentMethod.CREDIT_CARD:
            payload["card"] = {
                "number": "".join(card_details.number.split()),
                "holder_name": card_details.holder_name,
                "exp_month": card_details.exp_month,
                "exp_year": card_details.exp_year,
                "cvv": card_details.cvv,
            }

        if method is PaymentMethod.BOLETO:
            payload["customer"] = {
                "name": customer_info.name,
                "email": customer_info.email,
                "document": re.sub(r"\D", "", customer_info.document),
                "phone": customer_info.phone or "",
            }

        return payload

    async def create_charge(
        self,
        amount: Decimal,
        order_id: Any,
        method: PaymentMethod | str,
        customer_info: CustomerInfo | None = None,
        card_details: CardDetails | None = None,
    ) -> PaymentIntent:
        """
        Создать платёж у провайдера.

        Args:
            amount: Сумма в реалах (Decimal, основные единицы)
            order_id: ID заказа
            method: pix / credit_card / boleto
            customer_info: Данные покупателя (обязательны для boleto)
            card_details: Данные карты (обязательны для credit_card)

        Returns:
            PaymentIntent в статусе, который вернул провайдер

        Raises:
            ValidationError: Некорректные входные данные
            ConfigurationError: Не настроен API ключ
            GatewayError: Таймаут, сетевая ошибка или не-2xx ответ
        """
        method = self.validate_request(amount, order_id, method, customer_info, card_details)
        amount = Decimal(amount)

        if not self.api_key:
            logger.error("ABACATEPAY_API_KEY not configured")
            raise ConfigurationError()

        payload = self.build_payload(amount, order_id, method, customer_info, card_details)

        log_extra = f"card_last4={card_details.last4}" if card_details else ""
        logger.info(
            f"Creating AbacatePay {method.value} payment for order {order_id}: "
            f"amount={payload['amount']} BRL cents {log_extra}".rstrip()
        )

        try:
            response = await self.http_client.post(
                f"{self.api_url}{BILLING_ENDPOINT}",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            logger.error(f"AbacatePay API timeout for order {order_id}")
            raise GatewayError()
        except httpx.RequestError as e:
            logger.error(f"AbacatePay API request error for order {order_id}: {e}")
            raise GatewayError()

        if not response.is_success:
            details = _safe_json(response)
            message = details.get("message") if isinstance(details, dict) else None
            logger.error(f"AbacatePay API error: {response.status_code} - {response.text}")
            raise GatewayError(
                message or "Erro na comunicação com o provedor de pagamento",
                status_code=response.status_code,
                details=details or None,
            )

        data = _safe_json(response)
        if not isinstance(data, dict) or not data.get("id"):
            logger.error(f"AbacatePay returned a billing without id: {response.text}")
            raise GatewayError(status_code=502)

        logger.info(f"AbacatePay billing created: {data['id']} status={data.get('status')}")
        return self.parse_billing(data, amount, method, card_details)

    @staticmethod
    def parse_billing(
        data: dict[str, Any],
        amount: Decimal,
        method: PaymentMethod,
        card_details: CardDetails | None = None,
    ) -> PaymentIntent:
        """Ответ провайдера -> PaymentIntent."""
        if method is PaymentMethod.PIX:
            details = PixDetails(
                qr_code_text=data.get("pix_qr_code_text"),
                qr_code_image=data.get("pix_qr_code"),
            )
        elif method is PaymentMethod.BOLETO:
            details = BoletoDetails(
                boleto_url=data.get("boleto_url"),
                boleto_barcode=data.get("boleto_barcode"),
            )
        else:
            details = CardPaymentDetails(
                card_last4=card_details.last4 if card_details else None,
                transaction_id=data.get("transaction_id") or data.get("id"),
            )

        return PaymentIntent(
            external_id=str(data["id"]),
            amount=amount,
            method=method,
            status=map_provider_status(data.get("status")),
            expires_at=_parse_datetime(data.get("expires_at")),
            details=details,
            raw=data,
        )


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable expires_at from AbacatePay: {value}")
        return None
