"""
A2A Task Lifecycle Orchestration

Owns the state of one task per call (submitted -> working -> completed/failed)
and builds the protocol entities emitted at each transition, for both the
single-shot ``message/send`` flow and the streamed ``message/stream`` flow.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Dict, Optional

from .a2a.models import (
    Artifact,
    Message,
    StreamEvent,
    Task,
    TaskArtifactUpdateEvent,
    TaskState,
    TaskStatus,
    TaskStatusUpdateEvent,
    TextPart,
    create_artifact_id,
    create_context_id,
    create_message_id,
    create_task_id,
)
from .chunk_aggregator import aggregate
from .llm_client import ModelBackend
from .skills import SkillCatalog

logger = logging.getLogger(__name__)

ARTIFACT_NAME = "answer"
THINKING_TEXT = "Thinking about your request..."
DRAFTING_TEXT = "Drafting the response in chunks..."


class InvalidTaskTransition(RuntimeError):
    """Raised when a task state change would move backwards or leave a terminal state."""


def _text_message(role: str, text: str, task_id: str, context_id: str) -> Message:
    return Message(
        role=role,
        parts=[TextPart(text=text)],
        messageId=create_message_id(),
        taskId=task_id,
        contextId=context_id,
    )


class TaskLifecycle:
    """Finite-state wrapper around one Task."""

    def __init__(self, user_text: str, metadata: Optional[Dict[str, str]] = None):
        task_id = create_task_id()
        context_id = create_context_id()
        self.user_message = _text_message("user", user_text, task_id, context_id)
        self.task = Task(
            id=task_id,
            contextId=context_id,
            status=TaskStatus(state=TaskState.SUBMITTED),
            history=[self.user_message],
            metadata=dict(metadata or {}),
        )

    @property
    def task_id(self) -> str:
        return self.task.id

    @property
    def context_id(self) -> str:
        return self.task.contextId

    @property
    def state(self) -> TaskState:
        return self.task.status.state

    def transition(self, state: TaskState, message: Optional[Message] = None) -> TaskStatus:
        """Advance the task to ``state``; staying in a non-terminal state is allowed."""
        current = self.state
        if current.is_terminal or state.rank < current.rank:
            raise InvalidTaskTransition(
                f"Cannot move task {self.task_id} from {current.value} to {state.value}"
            )
        self.task.status = TaskStatus(state=state, message=message)
        logger.debug("Task state changed",
                     extra={"task_id": self.task_id, "from": current.value, "to": state.value})
        return self.task.status

    def agent_message(self, text: str) -> Message:
        return _text_message("agent", text, self.task_id, self.context_id)

    def snapshot(self) -> Task:
        return self.task.model_copy(deep=True)

    def status_event(self, final: bool) -> TaskStatusUpdateEvent:
        return TaskStatusUpdateEvent(
            taskId=self.task_id,
            contextId=self.context_id,
            status=self.task.status.model_copy(deep=True),
            final=final,
        )


class TaskOrchestrator:
    """Runs user turns against the model backend."""

    def __init__(self, backend: ModelBackend, catalog: SkillCatalog):
        self.backend = backend
        self.catalog = catalog

    async def run_single_shot(self, user_text: str, skill_id: Optional[str]) -> Task:
        """Produce a completed Task holding the full answer.

        Backend failures propagate to the caller; no Task is returned.
        """
        profile = self.catalog.resolve(skill_id)
        lifecycle = TaskLifecycle(user_text, metadata={"skillId": profile.skill_id})

        logger.info("message/send started", extra={
            "task_id": lifecycle.task_id,
            "context_id": lifecycle.context_id,
            "skill_id": profile.skill_id,
        })

        lifecycle.transition(TaskState.WORKING)
        try:
            answer = await self.backend.ask(user_text, profile)
        except Exception:
            lifecycle.transition(TaskState.FAILED)
            logger.exception("Model backend failed during message/send",
                             extra={"task_id": lifecycle.task_id})
            raise

        agent_message = lifecycle.agent_message(answer)
        task = lifecycle.task
        task.artifacts = [
            Artifact(
                artifactId=create_artifact_id(),
                name=ARTIFACT_NAME,
                parts=[TextPart(text=answer)],
            )
        ]
        task.history.append(agent_message)
        lifecycle.transition(TaskState.COMPLETED)

        logger.info("message/send completed",
                    extra={"task_id": task.id, "answer_length": len(answer)})
        return task

    async def stream_events(self, user_text: str, skill_id: Optional[str]) -> AsyncIterator[StreamEvent]:
        """Yield the protocol entities of one streamed turn, in emission order.

        A backend failure marks the task failed and propagates; the caller
        turns it into the terminal error event.
        """
        profile = self.catalog.resolve(skill_id)
        lifecycle = TaskLifecycle(user_text, metadata={"skillId": profile.skill_id})
        artifact_id = create_artifact_id()
        chunks_sent = 0

        logger.info("message/stream started", extra={
            "task_id": lifecycle.task_id,
            "context_id": lifecycle.context_id,
            "skill_id": profile.skill_id,
            "chunk_count": profile.chunk_count,
            "max_wait": profile.max_wait,
        })

        yield lifecycle.snapshot()

        lifecycle.transition(TaskState.WORKING, lifecycle.agent_message(THINKING_TEXT))
        yield lifecycle.status_event(final=False)

        lifecycle.transition(TaskState.WORKING, lifecycle.agent_message(DRAFTING_TEXT))
        yield lifecycle.status_event(final=False)

        chunks = aggregate(
            self.backend.stream(user_text, profile),
            max_count=profile.chunk_count,
            max_wait=profile.max_wait,
        )
        try:
            async for chunk in chunks:
                if not chunk or not chunk.strip():
                    continue
                yield TaskArtifactUpdateEvent(
                    taskId=lifecycle.task_id,
                    contextId=lifecycle.context_id,
                    artifact=Artifact(
                        artifactId=artifact_id,
                        name=ARTIFACT_NAME,
                        parts=[TextPart(text=chunk)],
                    ),
                    append=True if chunks_sent else None,
                )
                chunks_sent += 1
        except Exception:
            lifecycle.transition(TaskState.FAILED)
            logger.exception("Model backend failed during message/stream", extra={
                "task_id": lifecycle.task_id,
                "chunks_sent": chunks_sent,
            })
            raise
        finally:
            await chunks.aclose()

        lifecycle.transition(TaskState.COMPLETED)
        logger.info("message/stream completed",
                    extra={"task_id": lifecycle.task_id, "chunks_sent": chunks_sent})
        yield lifecycle.status_event(final=True)
