"""Сервис для работы с продуктами."""
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.product import Product


class ProductService:
    """Сервис для работы с продуктами."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_products(
        self,
        category: str | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Product]:
        """Получить активные продукты с фильтрами."""
        stmt = select(Product).where(Product.is_active == True)  # noqa: E712

        if category:
            stmt = stmt.where(Product.category == category)

        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))

        stmt = stmt.order_by(Product.id).offset(offset).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
