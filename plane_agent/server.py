"""
Webhook listener for Plane Agent.

FastAPI application exposing:
- POST /plane-webhook  Plane event delivery
- GET  /health         liveness probe
"""

import logging
from contextlib import ExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .config import AppConfig, get_config
from .plane_client import PlaneClient
from .webhooks import WebhookDispatcher


logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    dispatcher: Optional[WebhookDispatcher] = None,
) -> FastAPI:
    """
    Build the webhook listener application.

    When no dispatcher is given, one is built at startup; it gets an open
    PlaneClient if a Plane API key is configured, so new issues receive
    analysis comments.

    Args:
        config: Application configuration.
        dispatcher: Pre-built dispatcher (used by tests).

    Returns:
        Configured FastAPI app.
    """
    if config is None:
        config = get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        with ExitStack() as stack:
            if app.state.dispatcher is None:
                client = None
                if config.plane.api_key and config.webhook.post_comments:
                    client = stack.enter_context(PlaneClient(config.plane))
                else:
                    logger.warning("PLANE_API_KEY not set, analysis comments disabled")
                app.state.dispatcher = WebhookDispatcher(
                    client=client,
                    workspace_slug=config.plane.workspace,
                    post_comments=config.webhook.post_comments,
                )
            logger.info(f"Webhook listener ready: {config.webhook.endpoint_url}")
            yield

    app = FastAPI(
        title="Plane Webhook Listener",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.dispatcher = dispatcher

    @app.post("/plane-webhook")
    async def plane_webhook(request: Request) -> JSONResponse:
        active = app.state.dispatcher
        if active is None:
            # Lifespan did not run (e.g. bare TestClient); no outbound client
            active = WebhookDispatcher(
                workspace_slug=config.plane.workspace,
                post_comments=False,
            )
            app.state.dispatcher = active

        raw = await request.body()
        result = await run_in_threadpool(active.dispatch_body, raw)
        return JSONResponse(status_code=result.status_code, content=result.body)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": config.webhook.service_name,
        }

    return app


def run_server(config: AppConfig, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Serve the webhook listener with uvicorn (blocking)."""
    host = host or config.webhook.host
    port = port or config.webhook.port

    logger.info(f"Webhook listener running on port {port}")
    logger.info(f"Plane webhook URL: http://localhost:{port}/plane-webhook")
    logger.info(f"Health check: http://localhost:{port}/health")

    uvicorn.run(create_app(config), host=host, port=port, log_level=config.log_level.lower())
