"""Dependencies для FastAPI."""
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from storefront.config import Settings
from storefront.core.cache import CacheService
from storefront.core.security import decode_access_token
from storefront.services.payment_service import PaymentService

optional_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


def get_cache(request: Request) -> CacheService:
    return request.app.state.cache


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
    settings: Settings = Depends(get_settings),
) -> int | None:
    """
    ID пользователя из bearer-токена, если он передан.

    Без токена запрос считается анонимным; с неверным токеном - 401.
    """
    if credentials is None:
        return None

    payload = decode_access_token(credentials.credentials, settings.secret_key)
    if payload is None or payload.get("sub") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido ou expirado",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido ou expirado",
            headers={"WWW-Authenticate": "Bearer"},
        )



async def require_user_id(user_id: int | None = Depends(get_current_user_id)) -> int:
    """ID пользователя; без токена - 401."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Autenticação necessária",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id

def get_session_id(x_session_id: str | None = Header(default=None)) -> str | None:
    """ID анонимной сессии браузера (заголовок X-Session-Id)."""
    return x_session_id
