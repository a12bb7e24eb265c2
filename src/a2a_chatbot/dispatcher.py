"""
A2A JSON-RPC 2.0 Dispatcher

Parses inbound JSON-RPC envelopes, routes them by method name to the
single-shot or streaming flow, and maps every failure to a JSON-RPC error
envelope. Nothing raised here escapes as an unstructured failure.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from .a2a.models import (
    AuthenticatedExtendedCardNotConfiguredError,
    InternalError,
    InvalidRequestError,
    JSONRPCRequest,
    MethodNotFoundError,
    RequestId,
    error_response,
    generate_id,
    success_response,
)
from .streaming import EventSequencer
from .task_orchestrator import TaskOrchestrator

logger = logging.getLogger(__name__)

MESSAGE_SEND = "message/send"
MESSAGE_STREAM = "message/stream"
GET_EXTENDED_CARD = "agent/getAuthenticatedExtendedCard"

MethodHandler = Callable[[JSONRPCRequest, RequestId], Awaitable[Dict[str, Any]]]


def extract_user_text(params: Any) -> str:
    """Return ``params.message.parts[0].text`` or ``""`` for any other shape."""
    if not isinstance(params, dict):
        return ""
    message = params.get("message")
    if not isinstance(message, dict):
        return ""
    parts = message.get("parts")
    if not isinstance(parts, list) or not parts:
        return ""
    first = parts[0]
    if not isinstance(first, dict):
        return ""
    text = first.get("text")
    if text is None:
        return ""
    return text if isinstance(text, str) else str(text)


def extract_skill_id(params: Any) -> Optional[str]:
    """Return ``params.metadata.skillId`` or ``None`` for any other shape."""
    if not isinstance(params, dict):
        return None
    metadata = params.get("metadata")
    if not isinstance(metadata, dict):
        return None
    skill_id = metadata.get("skillId")
    if skill_id is None:
        return None
    return skill_id if isinstance(skill_id, str) else str(skill_id)


def parse_request(payload: Any) -> Optional[JSONRPCRequest]:
    """Validate an envelope; ``None`` when it is not a JSON-RPC request object."""
    if not isinstance(payload, dict):
        return None
    try:
        return JSONRPCRequest.model_validate(payload)
    except ValidationError as e:
        logger.warning("Invalid JSON-RPC request format", extra={"error": str(e)})
        return None


def _has_method(request: Optional[JSONRPCRequest]) -> bool:
    return request is not None and bool(request.method and request.method.strip())


class JSONRPCDispatcher:
    """
    Routes A2A JSON-RPC calls.

    ``dispatch`` serves the request/response call; ``dispatch_stream`` serves
    the server-push call and yields JSON-RPC envelopes in emission order.
    """

    def __init__(self, orchestrator: TaskOrchestrator):
        self.orchestrator = orchestrator
        self.methods: Dict[str, MethodHandler] = {}
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        self.register_method(MESSAGE_SEND, self.handle_message_send)
        self.register_method(GET_EXTENDED_CARD, self.handle_get_extended_card)
        self.register_method(MESSAGE_STREAM, self.handle_message_stream_on_rpc)

    def register_method(self, method_name: str, handler: MethodHandler) -> None:
        """Register a single-shot method handler."""
        self.methods[method_name] = handler
        logger.debug("Registered A2A method handler", extra={"method": method_name})

    async def dispatch(self, payload: Any) -> Dict[str, Any]:
        """Handle one request/response JSON-RPC call."""
        request = parse_request(payload)
        if not _has_method(request):
            error = InvalidRequestError()
            return error_response(None, error.code, error.message)

        method_name = request.method
        request_id = request.id if request.id is not None else generate_id()

        logger.info("Processing A2A request", extra={
            "method": method_name,
            "id": request_id,
            "has_params": request.params is not None,
        })

        handler = self.methods.get(method_name)
        if handler is None:
            logger.warning("Method not found", extra={"method": method_name})
            error = MethodNotFoundError(message=f"Method not found: {method_name}")
            return error_response(request_id, error.code, error.message)

        try:
            response = await handler(request, request_id)
        except Exception as e:
            logger.exception("Unexpected error in method handler", extra={
                "method": method_name,
                "error": str(e),
            })
            error = InternalError(message="Internal server error")
            return error_response(request_id, error.code, error.message)

        logger.info("Sending A2A response", extra={
            "method": method_name,
            "id": request_id,
            "is_error": "error" in response,
        })
        return response

    async def handle_message_send(self, request: JSONRPCRequest, request_id: RequestId) -> Dict[str, Any]:
        """Handle message/send: run the turn to completion and return the Task."""
        user_text = extract_user_text(request.params)
        skill_id = extract_skill_id(request.params)
        try:
            task = await self.orchestrator.run_single_shot(user_text, skill_id)
        except Exception as e:
            error = InternalError(message=f"Failed to send message: {e}")
            return error_response(request_id, error.code, error.message)
        return success_response(request_id, task)

    async def handle_get_extended_card(self, request: JSONRPCRequest, request_id: RequestId) -> Dict[str, Any]:
        """The authenticated extended card is intentionally not configured."""
        error = AuthenticatedExtendedCardNotConfiguredError()
        return error_response(request_id, error.code, error.message)

    async def handle_message_stream_on_rpc(self, request: JSONRPCRequest, request_id: RequestId) -> Dict[str, Any]:
        """Streaming is only served by the dedicated push endpoint."""
        error = MethodNotFoundError(
            message="Streaming not supported on this endpoint. Use /message/stream."
        )
        return error_response(request_id, error.code, error.message)

    async def dispatch_stream(self, payload: Any) -> AsyncIterator[Dict[str, Any]]:
        """Handle one message/stream call, yielding envelopes in order."""
        request = parse_request(payload)
        if request is None or request.method != MESSAGE_STREAM:
            error = InvalidRequestError(message="Expected JSON-RPC method message/stream")
            yield error_response(request.id if request else None, error.code, error.message)
            return

        request_id = request.id if request.id is not None else generate_id()
        user_text = extract_user_text(request.params)
        skill_id = extract_skill_id(request.params)

        logger.info("Processing A2A streaming request", extra={
            "method": request.method,
            "id": request_id,
            "skill_id": self.orchestrator.catalog.resolved_skill_id(skill_id),
        })

        sequencer = EventSequencer(request_id)
        envelopes = sequencer.sequence(self.orchestrator.stream_events(user_text, skill_id))
        try:
            async for envelope in envelopes:
                yield envelope
        finally:
            await envelopes.aclose()
