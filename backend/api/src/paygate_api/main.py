"""FastAPI application for the payment gateway.

This package provides REST endpoints for:
- Health checks
- Stripe webhook ingestion (verify, dedupe, dispatch)
- Checkout session and payment intent creation
"""

import os
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from paygate.utils.logging import configure_logging, get_logger
from paygate_api.dependencies import get_settings
from paygate_api.exceptions import register_exception_handlers
from paygate_api.middleware.correlation import CorrelationIdMiddleware
from paygate_api.routes import sessions_router, webhooks_router

logger = get_logger(__name__)


async def ping() -> dict[str, Any]:
    """Root health check endpoint at /api/ping."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "paygate-api",
    }


def create_app() -> FastAPI:
    """Build the FastAPI application.

    Returns:
        App with CORS, correlation ids, exception handlers and all routers
        mounted under /api.
    """
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    app = FastAPI(
        title="Paygate API",
        description="Stripe webhook ingestion and payment session creation",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(get_settings().cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    # Register exception handlers for consistent error responses
    register_exception_handlers(app)

    # Include routers under /api prefix
    app.include_router(webhooks_router, prefix="/api")
    app.include_router(sessions_router, prefix="/api")
    app.add_api_route("/api/ping", ping, methods=["GET"], tags=["health"])

    return app


app = create_app()

# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = True) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: True)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run(
            "paygate_api.main:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["api/src", "shared/src"],
        )
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
