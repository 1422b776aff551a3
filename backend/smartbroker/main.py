# smartbroker/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from smartbroker.api.v1 import api_v1_router
from smartbroker.core.config import settings
from smartbroker.core.database import mongo_manager
from smartbroker.core.exceptions import MessagingError, ProviderError
from smartbroker.core.logging_config import add_trace_id_middleware, setup_logging
from smartbroker.core.rate_limit import limiter
from smartbroker.services.llm_client import ProviderFactory
from smartbroker.services.whatsapp_service import EvolutionBridge
from smartbroker.worker.runner import BackgroundRunner


async def upstream_exception_handler(request: Request, exc: Exception):
    logger.warning(f"Upstream failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.PROJECT_NAME}...")
    await mongo_manager.connect()
    yield
    logger.info("Shutting down...")
    await app.state.runner.shutdown()
    await app.state.messaging_bridge.close()
    await app.state.provider_factory.close()
    await mongo_manager.disconnect()


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
        exception_handlers={
            RateLimitExceeded: _rate_limit_exceeded_handler,
            MessagingError: upstream_exception_handler,
            ProviderError: upstream_exception_handler,
        },
    )

    # Componentes compartilhados por toda a aplicação
    app.state.limiter = limiter
    app.state.runner = BackgroundRunner()
    app.state.messaging_bridge = EvolutionBridge()
    app.state.provider_factory = ProviderFactory()

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.FRONTEND_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(add_trace_id_middleware)

    app.include_router(api_v1_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
