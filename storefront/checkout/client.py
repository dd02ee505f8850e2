"""HTTP-клиент витрины для фронтенда и checkout-сессии."""
import logging
from decimal import Decimal
from typing import Any

import httpx

from storefront.core.exceptions import GatewayError
from storefront.services.payment_types import (
    CustomerInfo,
    PaymentIntent,
    PaymentMethod,
    PaymentStatus,
    PixDetails,
    StatusSource,
)

logger = logging.getLogger(__name__)


class StorefrontClient:
    """Обёртка над API витрины.

    Каждый запрос несёт bearer-токен (если пользователь вошёл) и
    X-Session-Id анонимной сессии. Любой не-2xx ответ или сетевая ошибка
    превращается в GatewayError с сообщением сервера; 2xx с телом не того
    формата тоже даёт GatewayError (502).
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token: str | None = None,
        session_id: str | None = None,
    ):
        self.http_client = http_client
        self.token = token
        self.session_id = session_id

    def _headers(self) -> dict[str, str]:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.session_id:
            headers["X-Session-Id"] = self.session_id
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.http_client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise GatewayError()

        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("error") if isinstance(body, dict) else None
            raise GatewayError(
                message or "Erro na comunicação com o provedor de pagamento",
                status_code=response.status_code,
                details=body.get("details") if isinstance(body, dict) else None,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning(f"{method} {path} returned non-JSON body with status {response.status_code}")
            raise GatewayError("Resposta inválida do servidor", status_code=502)

    # Каталог и корзина

    async def list_products(self, category: str | None = None, q: str | None = None) -> list[dict]:
        params = {k: v for k, v in {"category": category, "q": q}.items() if v}
        return await self._request("GET", "/api/products", params=params)

    async def get_cart(self) -> dict:
        return await self._request("GET", "/api/cart")

    async def put_cart(self, items: list[dict]) -> dict:
        return await self._request("PUT", "/api/cart", json={"items": items})

    async def clear_cart(self) -> None:
        await self._request("DELETE", "/api/cart")

    # Заказы и оплата

    async def create_order(
        self,
        items: list[dict],
        shipping_address: dict,
        shipping_cost: Decimal = Decimal("0"),
        payment_method: PaymentMethod = PaymentMethod.PIX,
    ) -> dict:
        return await self._request(
            "POST",
            "/api/orders",
            json={
                "items": items,
                "shippingAddress": shipping_address,
                "shippingCost": str(shipping_cost),
                "paymentMethod": PaymentMethod(payment_method).value,
            },
        )

    async def create_pix_payment(
        self,
        amount: Decimal,
        order_id: int,
        customer_info: CustomerInfo | None = None,
    ) -> PaymentIntent:
        """Создать PIX-платёж; сумма уходит строкой, чтобы не терять точность."""
        body: dict[str, Any] = {"amount": str(amount), "orderId": order_id}
        if customer_info:
            body["customerInfo"] = customer_info.model_dump(by_alias=True, exclude_none=True)

        data = await self._request("POST", "/api/payment/abacatepay/create", json=body)
        try:
            return PaymentIntent(
                external_id=data["id"],
                amount=Decimal(str(data["amount"])),
                method=PaymentMethod.PIX,
                status=data.get("status") or PaymentStatus.PENDING,
                expires_at=data.get("expiresAt"),
                details=PixDetails(
                    qr_code_text=data.get("qrCodeText"),
                    qr_code_image=data.get("qrCode"),
                ),
                raw=data,
            )
        except (TypeError, KeyError, ValueError, ArithmeticError):
            logger.warning(f"Unexpected charge response for order {order_id}: {data!r}")
            raise GatewayError("Resposta inválida do servidor", status_code=502)

    async def get_payment_status(self, payment_id: str) -> tuple[PaymentStatus, StatusSource]:
        """Статус платежа и его источник: local значит, что сервер сам решил, что срок истёк."""
        data = await self._request("GET", f"/api/payment/abacatepay/status/{payment_id}")
        try:
            return PaymentStatus(data["status"]), StatusSource(data.get("source") or StatusSource.PROVIDER)
        except (TypeError, KeyError, ValueError, AttributeError):
            logger.warning(f"Unexpected status response for payment {payment_id}: {data!r}")
            raise GatewayError("Resposta inválida do servidor", status_code=502)
