"""Сервис для работы с корзиной."""
from datetime import timedelta

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.timeutils import utcnow
from storefront.models.cart import CartItem
from storefront.models.product import Product


class CartService:
    """Корзина пользователя или анонимной сессии."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _owner_clause(user_id: int | None, session_id: str | None):
        if user_id is not None:
            return CartItem.user_id == user_id
        if session_id:
            return CartItem.session_id == session_id
        raise ValueError("Sessão ou usuário é obrigatório para o carrinho")

    async def get_items(self, user_id: int | None, session_id: str | None) -> list[CartItem]:
        """Получить позиции корзины вместе с товарами."""
        stmt = (
            select(CartItem)
            .where(self._owner_clause(user_id, session_id))
            .order_by(CartItem.id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all())

    async def replace(
        self,
        user_id: int | None,
        session_id: str | None,
        items: list[dict],
    ) -> list[CartItem]:
        """Заменить содержимое корзины целиком."""
        owner = self._owner_clause(user_id, session_id)

        # Склеиваем дубли одного товара
        quantities: dict[int, int] = {}
        for item in items:
            product_id = int(item["product_id"])
            quantity = int(item["quantity"])
            if quantity < 0:
                raise ValueError(f"Quantidade inválida para o produto {product_id}")
            quantities[product_id] = quantities.get(product_id, 0) + quantity

        if quantities:
            stmt = select(Product.id).where(
                Product.id.in_(quantities.keys()),
                Product.is_active == True,  # noqa: E712
            )
            result = await self.db.execute(stmt)
            existing = set(result.scalars().all())
            missing = set(quantities) - existing
            if missing:
                raise ValueError(f"Produto {sorted(missing)[0]} não encontrado ou inativo")

        await self.db.execute(delete(CartItem).where(owner))
        for product_id, quantity in quantities.items():
            if quantity == 0:
                continue
            self.db.add(
                CartItem(
                    user_id=user_id,
                    session_id=None if user_id is not None else session_id,
                    product_id=product_id,
                    quantity=quantity,
                )
            )
        await self.db.commit()
        return await self.get_items(user_id, session_id)

    async def clear(self, user_id: int | None, session_id: str | None) -> int:
        """Очистить корзину."""
        result = await self.db.execute(delete(CartItem).where(self._owner_clause(user_id, session_id)))
        await self.db.commit()
        return result.rowcount

    async def delete_stale_anonymous(self, days: int = 30) -> int:
        """Удалить анонимные корзины старше N дней."""
        cutoff = utcnow() - timedelta(days=days)
        stmt = delete(CartItem).where(
            CartItem.user_id.is_(None),
            CartItem.created_at < cutoff,
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount
