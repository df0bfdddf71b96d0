"""
FastAPI Application Entry Point

Integrates:
  - Commerce webhook (WhatsApp, orders, cart activity)
  - PayU payment webhook
  - Manual WhatsApp template send
  - Health checks
  - Middleware for logging & error handling

Run: uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from config import Config
from infra import ConfigurationError, InfraBootstrap
from transport.whatsapp.webhook import router as whatsapp_router
from webhook.commerce import router as commerce_router
from webhook.payments import router as payments_router

# Setup logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(bootstrap: Optional[InfraBootstrap] = None) -> FastAPI:
    """
    Build the application.

    Args:
        bootstrap: Pre-built infrastructure (tests); built from the
            environment at startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan: startup and shutdown handlers.
        """
        # Startup
        app.state.bootstrap = bootstrap or InfraBootstrap.get_instance()
        logger.info("=" * 60)
        logger.info("COD console service starting up...")
        logger.info(f"Environment: {Config.ENVIRONMENT}")
        logger.info(f"Infrastructure: {app.state.bootstrap!r}")
        if app.state.bootstrap.startup_error:
            logger.error(f"Not ready: {app.state.bootstrap.startup_error}")
        logger.info("=" * 60)

        yield

        # Shutdown
        logger.info("COD console service shutting down...")
        await app.state.bootstrap.close()

    app = FastAPI(
        title="COD Console API",
        description="COD order confirmation over WhatsApp",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict this in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware for logging
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests."""
        logger.debug(f"{request.method} {request.url.path}")
        try:
            response = await call_next(request)
            return response
        except Exception as e:
            logger.error(f"Request error: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error"},
            )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=500, content={"error": str(exc)})

    # Include routers
    app.include_router(commerce_router)
    app.include_router(payments_router)
    app.include_router(whatsapp_router)

    # Health check endpoints
    @app.get("/health/live")
    async def health_live():
        """Live health check (Kubernetes liveness probe)."""
        return {"status": "alive"}

    @app.get("/health/ready")
    async def health_ready(request: Request):
        """Readiness health check (Kubernetes readiness probe)."""
        current = getattr(request.app.state, "bootstrap", None)
        if current is None:
            return {"status": "not_ready", "reason": "starting"}
        if current.startup_error:
            return {"status": "not_ready", "reason": str(current.startup_error)}
        return {"status": "ready"}

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "COD Console API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "webhook_verify": "GET /api/webhook",
                "webhook": "POST /api/webhook",
                "payu_webhook": "POST /api/payu-webhook",
                "whatsapp_send": "POST /api/whatsapp",
                "health_live": "GET /health/live",
                "health_ready": "GET /health/ready",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=Config.APP_PORT,
        reload=Config.ENVIRONMENT == "development",
    )
