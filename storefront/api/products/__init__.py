"""Products API."""
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.cache import CacheService, get_cache_key_products
from storefront.core.dependencies import get_cache
from storefront.database import get_db
from storefront.services.product_service import ProductService

router = APIRouter()


class ProductResponse(BaseModel):
    """Ответ с информацией о продукте."""

    id: int
    name: str
    slug: str
    description: str | None = None
    category: str | None = None
    price: float
    image_url: str | None = None
    stock_quantity: int | None = None


@router.get("", response_model=List[ProductResponse])
async def get_products(
    category: str | None = None,
    q: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
):
    """
    Получить список активных продуктов.

    Параметры:
    - category: slug категории
    - q: поисковый запрос
    """
    limit = max(1, min(limit, 100))
    cache_key = get_cache_key_products(category, q, limit, offset)
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    service = ProductService(db)
    products = await service.list_products(category=category, search=q, limit=limit, offset=offset)
    response = [
        ProductResponse(
            id=p.id,
            name=p.name,
            slug=p.slug,
            description=p.description,
            category=p.category,
            price=float(p.price),
            image_url=p.image_url,
            stock_quantity=p.stock_quantity,
        ).model_dump()
        for p in products
    ]

    await cache.set(cache_key, response, ttl=300)
    return response
