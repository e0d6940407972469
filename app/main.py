"""
app/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Loads configuration and logging
- Builds the service context and registers API routes (webhook)
- No business logic should be written here
- Manages application lifecycle (startup/shutdown)
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import time

from app.core.config import settings, validate_settings
from app.core.errors import add_exception_handlers
from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, check_database_health, ensure_kv_documents
from app.flow.context import ShopContext, build_context
from app.api import webhook
from app.schemas.response import StatusResponse
from utils.time_utils import format_uptime

# Initialize logging first
setup_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"


def create_app(context: Optional[ShopContext] = None) -> FastAPI:
    """
    Builds the FastAPI app.

    Args:
        context: Prebuilt service context. When omitted, the lifespan
            connects the configured backend and builds one.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.
        Handles startup and shutdown events.
        """
        logger.info(f"🚀 Starting {settings.BOT_NAME} bot...")
        owns_context = app.state.context is None

        try:
            if owns_context:
                logger.info("Validating configuration...")
                validate_settings()
                logger.info("✅ Configuration validated")

                if settings.KV_BACKEND == "mongo":
                    logger.info("Connecting to MongoDB...")
                    await connect_to_mongo(settings)
                    await ensure_kv_documents()
                    logger.info("✅ MongoDB connected")

                app.state.context = build_context(settings)

            # First access seeds the deployment timestamp
            shop_config = await app.state.context.shop_config.load()
            logger.info(f"Deployed at {shop_config.deployment_timestamp}")

            logger.info(f"🎉 {settings.BOT_NAME} started successfully!")
            logger.info(f"Environment: {settings.ENVIRONMENT}")

        except Exception as e:
            logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
            raise

        yield  # Application runs here

        logger.info("🛑 Shutting down...")
        ctx: ShopContext = app.state.context
        await ctx.background.shutdown()

        if owns_context:
            await ctx.telegram.close()
            if settings.KV_BACKEND == "mongo":
                await close_mongo_connection()
            app.state.context = None

        logger.info("👋 Shut down successfully")

    app = FastAPI(
        title=f"{settings.BOT_NAME} - Telegram Storefront Bot",
        description="Webhook-driven Telegram shop for digital accounts",
        version=VERSION,
        lifespan=lifespan,
        debug=settings.DEBUG,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to all responses."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        # Telegram gives up on a webhook after roughly a minute
        if process_time > 5.0:
            logger.warning(f"Slow request detected: {request.method} {request.url.path} ({process_time:.1f}s)")

        return response

    add_exception_handlers(app)

    app.include_router(webhook.router, prefix=settings.API_PREFIX, tags=["Webhook"])

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint - basic info."""
        return {
            "name": settings.BOT_NAME,
            "version": VERSION,
            "description": "Telegram storefront bot",
            "status": "running",
            "environment": settings.ENVIRONMENT
        }

    @app.get("/status", response_model=StatusResponse, tags=["Health"])
    async def status(request: Request):
        """
        Public counters: members, stock, transactions and uptime since
        the first deployment.
        """
        ctx: ShopContext = webhook.get_context(request)
        shop_config = await ctx.shop_config.load()

        uptime_seconds = 0
        if shop_config.deployment_timestamp:
            uptime_seconds = max(int((ctx.clock() - shop_config.deployment_timestamp).total_seconds()), 0)

        return StatusResponse(
            bot=settings.BOT_NAME,
            users=await ctx.users.count_users(),
            stock=await ctx.catalog.stock_count(),
            transactions=shop_config.total_transactions,
            deployed_at=shop_config.deployment_timestamp.isoformat() if shop_config.deployment_timestamp else None,
            uptime_seconds=uptime_seconds,
            uptime=format_uptime(uptime_seconds),
        )

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint.
        Checks database connectivity and bot configuration.
        """
        ctx: Optional[ShopContext] = request.app.state.context
        health_status = {
            "status": "healthy",
            "timestamp": time.time(),
            "environment": settings.ENVIRONMENT,
            "version": VERSION,
            "checks": {}
        }

        if ctx is None:
            health_status["status"] = "unhealthy"
            health_status["checks"]["context"] = "not_initialized"
        elif ctx.config.KV_BACKEND == "mongo":
            db_healthy = await check_database_health()
            health_status["checks"]["database"] = "healthy" if db_healthy else "unhealthy"
            if not db_healthy:
                health_status["status"] = "degraded"
        else:
            health_status["checks"]["database"] = "memory"

        if ctx is not None:
            health_status["checks"]["telegram"] = "configured" if ctx.telegram.is_configured() else "missing_token"
            health_status["checks"]["background_tasks"] = ctx.background.pending

        status_code = 200 if health_status["status"] == "healthy" else 503
        return JSONResponse(content=health_status, status_code=status_code)

    @app.get("/live", tags=["Health"])
    async def liveness_check():
        """
        Liveness probe - indicates if app is alive.
        """
        return {"status": "alive"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
