"""
Studio WhatsApp Relay - Main FastAPI Application
"""
from fastapi import FastAPI
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.logging import setup_logging, get_logger
from app.core.middleware import setup_middleware, setup_exception_handlers
from app.api.routes import router as api_router
from app.db.database import engine, Base

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


_OPENAPI_TAGS = [
    {"name": "Webhooks", "description": "Eventos da Z-API e avisos de vencimento do backend parceiro."},
    {"name": "Admin", "description": "Diagnóstico: sessões, Redis, circuit breakers, Z-API e token do parceiro."},
    {"name": "Health", "description": "Liveness e readiness."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "Atendimento da Metta Studio pelo WhatsApp: contratação de pacotes, "
        "cadastro de clientes, boletos/PIX e carnês."
    ),
    openapi_tags=_OPENAPI_TAGS,
)

# Setup middleware (security headers, correlation ID, request logging, rate limit)
setup_middleware(app)
setup_exception_handlers(app)

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Create tables and start the partner token refresh loop"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")

    from app.domain.services.partner.factory import get_token_provider
    get_token_provider().start()


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    from app.core.redis_client import close_redis
    from app.domain.services.partner.factory import close_partner_clients
    from app.domain.services.zapi.provider_factory import close_messaging_provider

    await close_redis()
    await close_partner_clients()
    await close_messaging_provider()
    # fecha o pool para não esgotar conexões do Postgres em redeploys
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get(
    "/health",
    summary="Liveness probe",
    description="O processo está de pé. Não consulta dependências externas.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="Readiness probe",
    description="Consulta banco, Redis e a instância Z-API; 503 quando alguma falha.",
    responses={
        200: {
            "description": "Todas as dependências ok",
            "content": {
                "application/json": {
                    "example": {"status": "healthy", "db": "ok", "redis": "ok", "zapi": "ok"}
                }
            },
        },
        503: {
            "description": "Pelo menos uma dependência indisponível",
            "content": {
                "application/json": {
                    "example": {
                        "status": "degraded",
                        "db": "ok",
                        "redis": "ok",
                        "zapi": "error: zapi_disconnected",
                    }
                }
            },
        },
    },
    tags=["Health"],
)
async def readiness_check() -> JSONResponse:
    from app.domain.services.health_service import check_readiness

    result = await check_readiness()
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)
