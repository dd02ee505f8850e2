"""Модель пользователя."""
from datetime import datetime

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.timeutils import utcnow
from storefront.database import Base


class User(Base):
    """Покупатель магазина.

    Токены выдаёт внешний сервис авторизации; здесь хранится только профиль
    с адресом доставки по умолчанию.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    cpf: Mapped[str | None] = mapped_column(String(14), nullable=True)
    birthdate: Mapped[str | None] = mapped_column(String, nullable=True)  # YYYY-MM-DD как прислал фронтенд
    role: Mapped[str] = mapped_column(String, nullable=False, default="customer")  # customer / admin

    # Адрес по умолчанию
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    address_number: Mapped[str | None] = mapped_column(String, nullable=True)
    address_complement: Mapped[str | None] = mapped_column(String, nullable=True)
    district: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    state: Mapped[str | None] = mapped_column(String, nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String, nullable=True)
    country: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
