from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bytegate.app.api.chat import router as chat_router
from bytegate.app.core.config import settings
from bytegate.app.core.http_client import init_http_client
from bytegate.app.core.logging import get_logger, setup_logging
from bytegate.app.db.async_session import close_async_engine, init_async_db
from bytegate.app.exceptions import GatewayException
from bytegate.app.middleware.rate_limit import AdmissionController
from bytegate.app.middleware.request_id import RequestIdMiddleware


def create_app(controller: Optional[AdmissionController] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        controller: Admission controller to serve requests with; one is
            built from settings when omitted

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    admission_controller = controller or AdmissionController.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Open the shared HTTP client, create tables and run the bucket sweep."""
        async with init_http_client():
            if settings.db_auto_create:
                await init_async_db()

            await admission_controller.start()
            logger.info(
                "Application startup complete",
                extra={"debug_mode": settings.debug, "mock_provider": settings.mock_provider},
            )

            yield

        await admission_controller.shutdown()
        await close_async_engine()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="ByteGate",
        description="Rate limited ByteBot chat gateway for the BrainBytes learning platform",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.admission_controller = admission_controller

    # Middleware order matters: last added = first executed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
        max_age=600,
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(chat_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check with database and rate limiter status."""
        health_status: dict[str, Any] = {"status": "ok", "components": {}}

        try:
            from sqlalchemy import text

            from bytegate.app.db.async_session import get_async_engine

            async with get_async_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            health_status["components"]["database"] = {"status": "ok"}
        except Exception as e:
            health_status["status"] = "degraded"
            health_status["components"]["database"] = {
                "status": "error",
                "error": str(e)[:100],  # Truncate for security
            }

        limiter: AdmissionController = request.app.state.admission_controller
        health_status["components"]["rate_limiter"] = {
            "status": "ok",
            "buckets": limiter.bucket_count,
            "reclaimer_running": limiter.is_running,
        }
        return health_status

    @app.exception_handler(GatewayException)
    async def gateway_exception_handler(request: Request, exc: GatewayException) -> JSONResponse:
        """Render gateway errors with their status code and headers."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unhandled exceptions; never return a traceback to the client."""
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )

        if settings.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": str(exc),
                    "exception_type": type(exc).__name__,
                    "request_id": request_id,
                },
            )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "Internal server error",
                "request_id": request_id,
            },
        )

    return app


# Create the application instance
app = create_app()
