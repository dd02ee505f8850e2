"""Главный файл приложения."""
import logging
from contextlib import asynccontextmanager

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.api import router as api_router
from storefront.config import Settings, settings as default_settings
from storefront.core.cache import CacheService
from storefront.core.exceptions import PaymentError
from storefront.database import build_engine, build_session_factory, create_tables
from storefront.services.abacatepay import AbacatePayGateway
from storefront.services.cart_service import CartService
from storefront.services.order_service import order_finalizer
from storefront.services.payment_reconciler import PaymentReconciler
from storefront.services.payment_service import PaymentService
from storefront.services.payment_store import PaymentRecordStore

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_payment_service(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    http_client: httpx.AsyncClient,
) -> PaymentService:
    """Собрать платёжный контур из уже созданных ресурсов."""
    store = PaymentRecordStore(session_factory)
    reconciler = PaymentReconciler(store, finalize_order=order_finalizer(session_factory))
    gateway = AbacatePayGateway(
        http_client,
        api_key=settings.abacatepay_api_key,
        api_url=settings.abacatepay_api_url,
        webhook_secret=settings.abacatepay_webhook_secret,
        webhook_base_url=settings.webhook_base_url,
        timeout=settings.abacatepay_timeout,
    )
    return PaymentService(gateway, store, reconciler)


async def cleanup_stale_carts(
    session_factory: async_sessionmaker[AsyncSession], days: int
) -> None:
    """Периодическая задача для удаления брошенных анонимных корзин."""
    try:
        async with session_factory() as db:
            deleted_count = await CartService(db).delete_stale_anonymous(days=days)
            if deleted_count > 0:
                logger.info(f"Deleted {deleted_count} stale anonymous cart items (older than {days} days)")
    except Exception as e:
        logger.error(f"Error deleting stale carts: {e}", exc_info=True)


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    provider_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Создать приложение.

    Если session_factory и provider_client переданы (тесты), они
    используются как есть и не закрываются приложением. Иначе движок БД и
    HTTP-клиент провайдера создаются в lifespan один раз на процесс.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Управление жизненным циклом приложения."""
        # Startup
        engine = None
        owned_client = None
        if app.state.session_factory is None:
            engine = build_engine(settings.database_url)
            app.state.session_factory = build_session_factory(engine)
            if settings.auto_create_tables:
                await create_tables(engine)

        if app.state.payment_service is None:
            owned_client = httpx.AsyncClient(timeout=settings.abacatepay_timeout)
            app.state.payment_service = build_payment_service(
                settings, app.state.session_factory, owned_client
            )

        await app.state.cache.connect()

        # Задача будет выполняться каждый день в 3:00 UTC
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            cleanup_stale_carts,
            trigger=CronTrigger(hour=3, minute=0),
            args=[app.state.session_factory, settings.cart_retention_days],
            id="cleanup_stale_carts",
            name="Удаление брошенных корзин",
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Scheduler started: stale cart cleanup at 03:00 UTC daily")

        yield

        # Shutdown
        scheduler.shutdown(wait=False)
        await app.state.cache.disconnect()
        if owned_client is not None:
            await owned_client.aclose()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Cosmetic Store API",
        description="Backend API магазина косметики: каталог, корзина, заказы и оплата через AbacatePay",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.cache = CacheService(settings.redis_url)
    app.state.session_factory = session_factory
    app.state.payment_service = None
    if session_factory is not None and provider_client is not None:
        app.state.payment_service = build_payment_service(settings, session_factory, provider_client)

    # CORS - в development режиме разрешаем ВСЕ origins
    if settings.is_development:
        cors_origins = ["*"]
        # Нельзя использовать allow_credentials=True с allow_origins=["*"]
        allow_creds = False
    else:
        cors_origins = list(set(settings.cors_origins))
        allow_creds = True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_creds,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Подключаем роутеры
    app.include_router(api_router, prefix="/api")

    @app.get("/")
    async def root():
        """Корневой endpoint."""
        return {
            "message": "Cosmetic Store API",
            "version": "1.0.0",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Все ошибки отдаются фронтенду как {"error": "..."}."""

    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        content = {"error": exc.message}
        details = getattr(exc, "details", None)
        if details:
            content["details"] = details
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Dados inválidos") if errors else "Dados inválidos"
        logger.info(f"Request validation failed on {request.url.path}: {message}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Dados inválidos", "details": jsonable_errors(errors)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )


def jsonable_errors(errors) -> list[dict]:
    """Ошибки pydantic без несериализуемого контекста."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
        for err in errors
    ]


app = create_app()
