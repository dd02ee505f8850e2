"""Исключения платёжного контура."""


class PaymentError(Exception):
    """Базовое исключение платёжного контура."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(PaymentError, ValueError):
    """Некорректные или неполные данные запроса (сумма, карта, CPF)."""

    status_code = 400


class ConfigurationError(PaymentError):
    """На сервере не настроен ключ или секрет провайдера."""

    status_code = 500

    def __init__(self, message: str = "Configuração de pagamento não encontrada"):
        super().__init__(message)


class GatewayError(PaymentError):
    """Провайдер ответил не-2xx или не ответил вовсе.

    status_code: код провайдера, если ответ был, иначе 500.
    """

    def __init__(
        self,
        message: str = "Erro na comunicação com o provedor de pagamento",
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.provider_status_code = status_code
        self.status_code = status_code or 500
        self.details = details


class ReconciliationAnomaly(PaymentError):
    """Попытка перевести терминальный платёж в другой терминальный статус.

    Только логируется, пользователю не показывается.
    """

    def __init__(self, external_payment_id: str, current: str, attempted: str):
        self.external_payment_id = external_payment_id
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Payment {external_payment_id} is already '{current}', refusing '{attempted}'"
        )
