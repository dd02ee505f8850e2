"""Кэширование через Redis."""
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheService:
    """Сервис для работы с кэшем Redis.

    Если Redis не настроен или недоступен, все операции молча
    превращаются в промах кэша.
    """

    def __init__(self, redis_url: str = ""):
        self.redis_url = redis_url
        self._redis: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return bool(self.redis_url)

    async def connect(self):
        """Подключение к Redis."""
        if not self.enabled or self._redis:
            return
        try:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            # Проверяем подключение
            await self._redis.ping()
        except Exception as e:
            # Если Redis недоступен, продолжаем без кэша
            logger.warning(f"Redis unavailable, caching disabled: {e}")
            self._redis = None

    async def disconnect(self):
        """Отключение от Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> Any | None:
        """Получить значение из кэша."""
        if not self._redis:
            return None

        try:
            value = await self._redis.get(key)
            if value:
                return json.loads(value)
            return None
        except Exception:
            return None

    async def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Установить значение в кэш."""
        if not self._redis:
            return False

        try:
            serialized = json.dumps(value, default=str)
            await self._redis.setex(key, ttl, serialized)
            return True
        except Exception:
            return False


def get_cache_key_products(category: str | None = None, search: str | None = None, limit: int = 50, offset: int = 0) -> str:
    """Генерация ключа кэша для списка продуктов."""
    parts = ["products"]
    if category:
        parts.append(f"cat:{category}")
    if search:
        parts.append(f"q:{search}")
    parts.append(f"limit:{limit}")
    parts.append(f"offset:{offset}")
    return ":".join(parts)
