"""Cart API."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.dependencies import get_current_user_id, get_session_id
from storefront.database import get_db
from storefront.models.cart import CartItem
from storefront.services.cart_service import CartService
from storefront.services.payment_types import CamelModel

router = APIRouter()


class CartItemRequest(CamelModel):
    product_id: int
    quantity: int


class UpdateCartRequest(CamelModel):
    """Новое содержимое корзины целиком."""

    items: List[CartItemRequest]


class CartItemResponse(CamelModel):
    product_id: int
    name: str
    price: float
    quantity: int
    image_url: str | None = None


class CartResponse(CamelModel):
    items: List[CartItemResponse]
    subtotal: float


def _owner(user_id: int | None, session_id: str | None) -> tuple[int | None, str | None]:
    if user_id is None and not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cabeçalho X-Session-Id é obrigatório",
        )
    return user_id, session_id


def _cart_to_response(items: list[CartItem]) -> CartResponse:
    # Цены живые: берутся из каталога при каждом чтении
    response_items = [
        CartItemResponse(
            product_id=item.product_id,
            name=item.product.name,
            price=float(item.product.price),
            quantity=item.quantity,
            image_url=item.product.image_url,
        )
        for item in items
    ]
    subtotal = sum(i.price * i.quantity for i in response_items)
    return CartResponse(items=response_items, subtotal=round(subtotal, 2))


@router.get("", response_model=CartResponse)
async def get_cart(
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_current_user_id),
    session_id: str | None = Depends(get_session_id),
):
    """Получить корзину."""
    user_id, session_id = _owner(user_id, session_id)
    items = await CartService(db).get_items(user_id, session_id)
    return _cart_to_response(items)


@router.put("", response_model=CartResponse)
async def update_cart(
    request: UpdateCartRequest,
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_current_user_id),
    session_id: str | None = Depends(get_session_id),
):
    """Заменить содержимое корзины."""
    user_id, session_id = _owner(user_id, session_id)
    try:
        items = await CartService(db).replace(
            user_id,
            session_id,
            [{"product_id": i.product_id, "quantity": i.quantity} for i in request.items],
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return _cart_to_response(items)


@router.delete("")
async def clear_cart(
    db: AsyncSession = Depends(get_db),
    user_id: int | None = Depends(get_current_user_id),
    session_id: str | None = Depends(get_session_id),
):
    """Очистить корзину."""
    user_id, session_id = _owner(user_id, session_id)
    removed = await CartService(db).clear(user_id, session_id)
    return {"message": "Carrinho esvaziado", "removed": removed}
