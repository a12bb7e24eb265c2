"""
A2A Chatbot Main Application

A2A protocol server using JSON-RPC 2.0 over HTTP. Forwards user prompts to an
OpenAI-compatible model and answers either with a completed Task
(``message/send`` on ``POST /``) or with a Server-Sent Events stream
(``message/stream`` on ``POST /message/stream``).
"""

from __future__ import annotations

import json
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import Response, StreamingResponse

from .a2a import __protocol_version__, __version__
from .a2a.models import InternalError, error_response, serialize_a2a
from .agent_card import build_agent_card
from .dispatcher import JSONRPCDispatcher
from .llm_client import ModelBackend, OpenAIChatBackend
from .logging_config import configure_logging
from .settings import Settings, get_settings
from .skills import build_skill_catalog
from .streaming import format_sse
from .task_orchestrator import TaskOrchestrator

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def require_authorization(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> None:
    """FastAPI dependency enforcing bearer token authentication."""
    token = request.app.state.settings.auth_token

    # If no token is configured, allow access (development mode)
    if not token:
        return

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    provided = authorization.split(" ", 1)[1]
    if not secrets.compare_digest(provided, token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid bearer token")


def get_dispatcher(request: Request) -> JSONRPCDispatcher:
    return request.app.state.dispatcher


async def read_json_body(request: Request) -> Any:
    """Return the decoded JSON body, or ``None`` when it is empty or not JSON."""
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error("Invalid JSON in request body", extra={"error": str(e)})
        return None


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[ModelBackend] = None,
) -> FastAPI:
    """
    Create the A2A chatbot FastAPI application.

    Args:
        settings: Process settings; read from the environment when omitted
        backend: Model backend; an OpenAI-compatible client is built when omitted

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    catalog = build_skill_catalog(settings)
    agent_card = build_agent_card(settings, catalog)
    if backend is None:
        backend = OpenAIChatBackend(settings.model_backend)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        configure_logging()
        logger.info("A2A chatbot started", extra={
            "agent_name": settings.agent_name,
            "skills": [profile.skill_id for profile in catalog.profiles()],
        })
        yield
        await backend.close()
        logger.info("A2A chatbot shutdown")

    app = FastAPI(
        title="A2A Chatbot",
        description="A2A JSON-RPC agent forwarding prompts to an OpenAI-compatible model",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.agent_card = agent_card
    app.state.backend = backend
    app.state.dispatcher = JSONRPCDispatcher(TaskOrchestrator(backend, catalog))

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "protocol": "A2A", "version": __protocol_version__}

    # Well-known Agent Card discovery endpoint (publicly accessible)
    @app.get("/.well-known/agent-card.json")
    async def get_agent_card_well_known(request: Request) -> Any:
        """Agent Card discovery endpoint for A2A protocol compatibility."""
        logger.info("Serving agent card")
        return serialize_a2a(request.app.state.agent_card)

    @app.post("/", dependencies=[Depends(require_authorization)])
    async def handle_jsonrpc(
        request: Request,
        dispatcher: JSONRPCDispatcher = Depends(get_dispatcher),
    ) -> Response:
        """Main JSON-RPC 2.0 endpoint."""
        payload = await read_json_body(request)
        response = await dispatcher.dispatch(payload)
        return Response(content=json.dumps(response), media_type="application/json")

    @app.post("/message/stream", dependencies=[Depends(require_authorization)])
    async def handle_message_stream(
        request: Request,
        dispatcher: JSONRPCDispatcher = Depends(get_dispatcher),
    ) -> StreamingResponse:
        """Streaming endpoint for message/stream (SSE)."""
        payload = await read_json_body(request)

        async def sse_event_generator() -> AsyncIterator[str]:
            envelopes = dispatcher.dispatch_stream(payload)
            try:
                async for envelope in envelopes:
                    yield format_sse(envelope)
            except Exception as e:
                logger.exception("Error in streaming event generator")
                error = InternalError(message=f"Failed to stream message: {e}")
                yield format_sse(error_response(None, error.code, error.message))
            finally:
                await envelopes.aclose()

        return StreamingResponse(
            sse_event_generator(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    logger.info("A2A chatbot application created")
    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the A2A chatbot server directly."""
    import uvicorn

    settings = get_settings()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=host or settings.host,
        port=port or settings.port,
        log_level="info",
    )
