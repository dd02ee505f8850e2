"""Users API: профиль покупателя."""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.dependencies import require_user_id
from storefront.database import get_db
from storefront.models.user import User
from storefront.services.payment_types import CamelModel
from storefront.services.user_service import UserService

router = APIRouter()

DEFAULT_COUNTRY = "Brasil"


class ProfileUpdateRequest(CamelModel):
    """Обновление профиля; name и email обязательны, остальное - по желанию."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    cpf: str | None = None
    birthdate: str | None = None
    address: str | None = None
    address_number: str | None = None
    address_complement: str | None = None
    district: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


class ProfileResponse(CamelModel):
    """Профиль в формате фронтенда: пустые поля отдаются пустой строкой."""

    id: int
    name: str
    email: str
    phone: str
    cpf: str
    birthdate: str
    role: str
    address: str
    address_number: str
    address_complement: str
    district: str
    city: str
    state: str
    postal_code: str
    country: str
    created_at: datetime
    updated_at: datetime


def _user_to_profile(user: User) -> ProfileResponse:
    return ProfileResponse(
        id=user.id,
        name=user.full_name or user.username or "",
        email=user.email or "",
        phone=user.phone or "",
        cpf=user.cpf or "",
        birthdate=user.birthdate or "",
        role=user.role,
        address=user.address or "",
        address_number=user.address_number or "",
        address_complement=user.address_complement or "",
        district=user.district or "",
        city=user.city or "",
        state=user.state or "",
        postal_code=user.postal_code or "",
        country=user.country or DEFAULT_COUNTRY,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def _check_self(user_id: int, current_user_id: int) -> None:
    if user_id != current_user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acesso negado",
        )


@router.get("/{user_id}/profile", response_model=ProfileResponse)
async def get_profile(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(require_user_id),
):
    """Профиль пользователя. Доступен только ему самому."""
    _check_self(user_id, current_user_id)

    user = await UserService(db).get_user(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Usuário não encontrado",
        )

    return _user_to_profile(user)


@router.put("/{user_id}/profile", response_model=ProfileResponse)
async def update_profile(
    user_id: int,
    request: ProfileUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user_id: int = Depends(require_user_id),
):
    """
    Обновить профиль.

    Меняются только переданные поля; name уходит в full_name.
    """
    _check_self(user_id, current_user_id)

    if not (request.name or "").strip() or not (request.email or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Nome e e-mail são obrigatórios",
        )

    data = request.model_dump(exclude_unset=True)
    data["full_name"] = data.pop("name").strip()
    data["email"] = data["email"].strip()

    try:
        user = await UserService(db).update_profile(user_id, data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Usuário não encontrado",
        )

    return _user_to_profile(user)
