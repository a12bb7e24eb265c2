"""
Server-Sent Events sequencing for ``message/stream``.

``EventSequencer`` wraps the orchestrator's entities in JSON-RPC envelopes and
enforces the order a client relies on::

    submitted task, working update x2, artifact update*, completed update (final)

An upstream failure ends the sequence with exactly one error envelope; a
completed update and an error are never both sent for the same call.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Dict, Union

from .a2a.models import (
    RequestId,
    StreamEvent,
    StreamingError,
    Task,
    TaskArtifactUpdateEvent,
    TaskState,
    TaskStatusUpdateEvent,
    error_response,
    success_response,
)

logger = logging.getLogger(__name__)

WORKING_UPDATES = 2


class EventOrderError(RuntimeError):
    """Raised when an entity arrives out of the fixed streaming order."""


class _Phase(Enum):
    START = "start"
    SUBMITTED = "submitted"
    WORKING = "working"
    ARTIFACTS = "artifacts"
    DONE = "done"


class EventSequencer:
    """Orders and envelopes the events of one streaming call."""

    def __init__(self, request_id: RequestId):
        self.request_id = request_id
        self._phase = _Phase.START
        self._working_seen = 0
        self._artifact_id: Union[str, None] = None

    def _advance(self, event: StreamEvent) -> None:
        if self._phase is _Phase.DONE:
            raise EventOrderError("No events may follow the final status update")

        if isinstance(event, Task):
            if self._phase is not _Phase.START or event.status.state is not TaskState.SUBMITTED:
                raise EventOrderError("The submitted task must be the first event")
            self._phase = _Phase.SUBMITTED
            return

        if isinstance(event, TaskStatusUpdateEvent):
            if event.final:
                if self._phase not in (_Phase.WORKING, _Phase.ARTIFACTS) or (
                    self._working_seen < WORKING_UPDATES
                ):
                    raise EventOrderError("Final status update arrived before the working updates")
                if event.status.state is not TaskState.COMPLETED:
                    raise EventOrderError("Final status update must report completion")
                self._phase = _Phase.DONE
                return
            if self._phase not in (_Phase.SUBMITTED, _Phase.WORKING) or (
                self._working_seen >= WORKING_UPDATES
            ):
                raise EventOrderError("Unexpected working status update")
            self._working_seen += 1
            self._phase = _Phase.WORKING
            return

        if isinstance(event, TaskArtifactUpdateEvent):
            if self._phase is _Phase.WORKING and self._working_seen == WORKING_UPDATES:
                if event.append is not None:
                    raise EventOrderError("First artifact chunk must not be an append")
                self._artifact_id = event.artifact.artifactId
                self._phase = _Phase.ARTIFACTS
                return
            if self._phase is _Phase.ARTIFACTS:
                if event.artifact.artifactId != self._artifact_id or event.append is not True:
                    raise EventOrderError("Artifact chunks must append to a single artifact")
                return
            raise EventOrderError("Artifact update arrived before the working updates")

        raise EventOrderError(f"Unsupported streaming entity: {type(event).__name__}")

    async def sequence(self, events: AsyncIterator[StreamEvent]) -> AsyncIterator[Dict[str, Any]]:
        """Yield one JSON-RPC envelope per entity, or a single trailing error."""
        sent = 0
        try:
            async for event in events:
                self._advance(event)
                sent += 1
                yield success_response(self.request_id, event)
        except Exception as exc:
            logger.exception("Error in streaming response",
                             extra={"request_id": self.request_id, "events_sent": sent})
            error = StreamingError(message=f"Streaming error: {exc}")
            yield error_response(self.request_id, error.code, error.message)
            return
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

        if self._phase is not _Phase.DONE:
            # Source ended without a final update; report instead of closing silently.
            logger.error("Stream ended before completion",
                         extra={"request_id": self.request_id, "events_sent": sent})
            error = StreamingError(message="Streaming error: stream ended before completion")
            yield error_response(self.request_id, error.code, error.message)
            return

        logger.debug("Streaming sequence completed",
                     extra={"request_id": self.request_id, "events_sent": sent})


def format_sse(payload: Dict[str, Any]) -> str:
    """Serialize one JSON-RPC envelope as a server-sent event record."""
    return f"data: {json.dumps(payload)}\n\n"
