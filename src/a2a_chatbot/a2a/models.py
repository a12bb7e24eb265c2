"""
A2A (Agent-to-Agent) Protocol Data Models

Pydantic models for the subset of the A2A v0.3.0 protocol this agent speaks:
messages and text parts, tasks and their status, artifacts, streaming update
events, the agent card, and JSON-RPC 2.0 envelopes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr


# ===== FOUNDATIONAL TYPES =====

class TransportProtocol(str, Enum):
    """Supported A2A transport protocols."""
    JSONRPC = "JSONRPC"


class TaskState(str, Enum):
    """Defines the lifecycle states of a Task."""
    SUBMITTED = "submitted"
    WORKING = "working"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.COMPLETED, TaskState.FAILED)


_STATE_RANK = {
    TaskState.SUBMITTED: 0,
    TaskState.WORKING: 1,
    TaskState.COMPLETED: 2,
    TaskState.FAILED: 2,
}


# ===== AGENT CARD COMPONENTS =====

class AgentCapabilities(BaseModel):
    """Defines optional capabilities supported by an agent."""
    model_config = ConfigDict(frozen=True)

    streaming: Optional[bool] = None
    pushNotifications: Optional[bool] = None
    stateTransitionHistory: Optional[bool] = None


class AgentSkill(BaseModel):
    """Represents a distinct capability or function that an agent can perform."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    tags: List[str]
    examples: Optional[List[str]] = None
    inputModes: Optional[List[str]] = None
    outputModes: Optional[List[str]] = None


class AgentCard(BaseModel):
    """The AgentCard is a self-describing manifest for an agent."""
    model_config = ConfigDict(frozen=True)

    protocolVersion: str = "0.3.0"
    name: str
    description: str
    url: str
    preferredTransport: Optional[Union[TransportProtocol, str]] = None
    capabilities: AgentCapabilities
    defaultInputModes: List[str] = ["text/plain"]
    defaultOutputModes: List[str] = ["text/markdown"]
    skills: List[AgentSkill]
    supportsAuthenticatedExtendedCard: Optional[bool] = None


# ===== CONTENT PARTS =====

class TextPart(BaseModel):
    """Represents a text segment within a message or artifact."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


# Parts are tagged by ``kind``; new variants are added to this union.
Part = Union[TextPart]


# ===== TASK AND MESSAGE TYPES =====

class Message(BaseModel):
    """Represents a single message in the conversation between a user and an agent."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "agent"]
    parts: List[Part]
    messageId: str
    taskId: Optional[str] = None
    contextId: Optional[str] = None
    kind: Literal["message"] = "message"


class TaskStatus(BaseModel):
    """Represents the status of a task at a specific point in time."""
    state: TaskState
    message: Optional[Message] = None


class Artifact(BaseModel):
    """Represents a unit of content generated by an agent."""
    artifactId: str
    name: Optional[str] = None
    parts: List[Part]


class Task(BaseModel):
    """Represents a single user turn processed by the agent."""
    id: str
    contextId: str
    status: TaskStatus
    artifacts: Optional[List[Artifact]] = None
    history: List[Message] = Field(default_factory=list)
    kind: Literal["task"] = "task"
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ===== EVENT TYPES =====

class TaskStatusUpdateEvent(BaseModel):
    """An event sent by the agent to notify the client of a change in a task's status."""
    taskId: str
    contextId: str
    kind: Literal["status-update"] = "status-update"
    status: TaskStatus
    final: bool
    metadata: Optional[Dict[str, Any]] = None


class TaskArtifactUpdateEvent(BaseModel):
    """An event sent by the agent to notify the client that an artifact has been generated."""
    taskId: str
    contextId: str
    kind: Literal["artifact-update"] = "artifact-update"
    artifact: Artifact
    append: Optional[bool] = None
    lastChunk: Optional[bool] = None
    final: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None


StreamEvent = Union[Task, TaskStatusUpdateEvent, TaskArtifactUpdateEvent]


# ===== JSON-RPC 2.0 TYPES =====

# Any JSON number or string, echoed back unchanged (no 2.0 -> 2 coercion).
RequestId = Union[StrictInt, StrictFloat, StrictStr]


class JSONRPCRequest(BaseModel):
    """Represents a JSON-RPC 2.0 Request object.

    Validation is lenient on purpose: ``jsonrpc`` is not enforced and
    ``method`` may be missing so the dispatcher can answer with a proper
    Invalid Request error instead of a validation failure.
    """
    jsonrpc: Optional[str] = "2.0"
    id: Optional[RequestId] = None
    method: Optional[str] = None
    params: Optional[Any] = None


class JSONRPCError(BaseModel):
    """Represents a JSON-RPC 2.0 Error object."""
    code: int
    message: str
    data: Optional[Any] = None


class JSONRPCSuccessResponse(BaseModel):
    """Represents a successful JSON-RPC 2.0 Response object."""
    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId
    result: Any


class JSONRPCErrorResponse(BaseModel):
    """Represents a JSON-RPC 2.0 Error Response object."""
    jsonrpc: Literal["2.0"] = "2.0"
    id: Optional[RequestId] = None
    error: JSONRPCError


# ===== A2A ERROR TYPES =====

class InvalidRequestError(BaseModel):
    """The JSON sent is not a valid Request object."""
    code: int = -32600
    message: str = "Invalid Request"
    data: Optional[Any] = None


class MethodNotFoundError(BaseModel):
    """The method does not exist or is not available on this call shape."""
    code: int = -32601
    message: str = "Method not found"
    data: Optional[Any] = None


class InternalError(BaseModel):
    """Internal JSON-RPC error."""
    code: int = -32603
    message: str = "Internal error"
    data: Optional[Any] = None


class StreamingError(BaseModel):
    """A failure of the model backend after a stream has started."""
    code: int = -32000
    message: str = "Streaming error"
    data: Optional[Any] = None


class AuthenticatedExtendedCardNotConfiguredError(BaseModel):
    """An A2A-specific error indicating that the agent does not have an extended card configured."""
    code: int = -32007
    message: str = "AuthenticatedExtendedCardNotConfiguredError"
    data: Optional[Any] = None


# ===== UTILITY FUNCTIONS =====

def generate_id(prefix: str = "") -> str:
    """Generate a unique ID for A2A entities."""
    return f"{prefix}{uuid4()}" if prefix else str(uuid4())


def create_task_id() -> str:
    return generate_id()


def create_context_id() -> str:
    return generate_id()


def create_message_id() -> str:
    return generate_id()


def create_artifact_id() -> str:
    return generate_id()


def serialize_a2a(obj: Any) -> Any:
    """Convert Pydantic models (and nested structures) into JSON-serializable dicts without nulls."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", exclude_none=True)
    if isinstance(obj, list):
        return [serialize_a2a(item) for item in obj]
    if isinstance(obj, dict):
        return {key: serialize_a2a(value) for key, value in obj.items() if value is not None}
    return obj


def success_response(id: RequestId, result: Any) -> Dict[str, Any]:
    """Build a JSON-RPC success envelope around a protocol entity."""
    envelope = JSONRPCSuccessResponse(id=id, result=None).model_dump(mode="json")
    envelope["result"] = serialize_a2a(result)
    return envelope


def error_response(id: Optional[RequestId], code: int, message: str, data: Any = None) -> Dict[str, Any]:
    """Build a JSON-RPC error envelope. ``id`` is always present, possibly null."""
    envelope = JSONRPCErrorResponse(
        id=id,
        error=JSONRPCError(code=code, message=message, data=data),
    ).model_dump(mode="json")
    if data is None:
        envelope["error"].pop("data", None)
    return envelope
