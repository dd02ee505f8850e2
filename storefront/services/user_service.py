"""Сервис для работы с профилями пользователей."""
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.user import User

logger = logging.getLogger(__name__)

# Поля профиля, которые пользователь может менять сам
PROFILE_FIELDS = (
    "full_name",
    "email",
    "phone",
    "cpf",
    "birthdate",
    "address",
    "address_number",
    "address_complement",
    "district",
    "city",
    "state",
    "postal_code",
    "country",
)


class UserService:
    """Сервис для работы с пользователями."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: int) -> User | None:
        """Получить пользователя по ID."""
        return await self.db.get(User, user_id)

    async def get_by_email(self, email: str) -> User | None:
        """Получить пользователя по email."""
        stmt = select(User).where(User.email == email)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def update_profile(self, user_id: int, data: dict[str, Any]) -> User | None:
        """
        Обновить профиль.

        Меняются только переданные поля из PROFILE_FIELDS; роль и username
        через профиль не меняются.

        Returns:
            Обновлённый User или None, если пользователя нет.

        Raises:
            ValueError: email уже занят другим пользователем
        """
        user = await self.get_user(user_id)
        if user is None:
            return None

        email = data.get("email")
        if email and email != user.email:
            other = await self.get_by_email(email)
            if other is not None and other.id != user.id:
                raise ValueError("E-mail já cadastrado")

        for field in PROFILE_FIELDS:
            if field in data:
                setattr(user, field, data[field])

        await self.db.commit()
        await self.db.refresh(user)
        logger.info(f"Profile of user {user_id} updated: {sorted(k for k in data if k in PROFILE_FIELDS)}")
        return user
