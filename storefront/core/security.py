"""Токены доступа.

Токены выпускает внешний сервис авторизации общим секретом SECRET_KEY;
магазин их только проверяет.
"""
from typing import Any

from jose import jwt

ALGORITHM = "HS256"


def decode_access_token(token: str, secret_key: str) -> dict[str, Any] | None:
    """Декодирование JWT токена."""
    try:
        return jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except jwt.JWTError:
        return None
