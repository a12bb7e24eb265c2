"""
Model backend clients.

``ModelBackend`` is the boundary the orchestrator talks to: ``ask`` returns a
whole answer, ``stream`` returns a lazy sequence of text fragments.
``OpenAIChatBackend`` implements it against an OpenAI-compatible
``/chat/completions`` endpoint over httpx.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from .settings import ModelBackendSettings
from .skills import SkillProfile

logger = logging.getLogger(__name__)

NO_RESPONSE = "Error: No response"


class ModelBackendError(RuntimeError):
    """Errors raised when talking to the model backend."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ModelBackend(Protocol):
    async def ask(self, user_text: str, profile: SkillProfile) -> str:
        ...

    def stream(self, user_text: str, profile: SkillProfile) -> AsyncIterator[str]:
        ...

    async def close(self) -> None:
        ...


class AgentResponse(BaseModel):
    """Structured answer requested for brief profiles."""

    title: str
    bulletPoints: List[str] = Field(default_factory=list)

    def to_markdown(self) -> str:
        bullets = "\n".join(f"- {point.strip()}" for point in self.bulletPoints)
        return f"## {self.title}\n{bullets}"


AGENT_RESPONSE_FORMAT: Dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "agent_response",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "bulletPoints": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["title", "bulletPoints"],
            "additionalProperties": False,
        },
    },
}


class OpenAIChatBackend:
    """OpenAI-compatible chat completions client."""

    def __init__(
        self,
        settings: ModelBackendSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not settings.api_key:
            raise ValueError("OPENAI_API_KEY is required for the OpenAI backend")
        self.model = settings.model
        self._client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {settings.api_key}"},
            timeout=settings.timeout,
            transport=transport,
        )

    def _payload(self, user_text: str, profile: SkillProfile, *, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": profile.instructions},
                {"role": "user", "content": user_text},
            ],
        }
        if stream:
            payload["stream"] = True
        elif profile.structured_output:
            payload["response_format"] = AGENT_RESPONSE_FORMAT
        return payload

    async def ask(self, user_text: str, profile: SkillProfile) -> str:
        payload = self._payload(user_text, profile, stream=False)
        try:
            resp = await self._client.post("/chat/completions", json=payload)
        except httpx.HTTPError as exc:
            raise ModelBackendError(f"Model backend request failed: {exc}") from exc

        if resp.status_code != 200:
            raise ModelBackendError(
                f"Model backend HTTP {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )

        data = resp.json()
        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        logger.debug("Model answer received",
                     extra={"skill_id": profile.skill_id, "length": len(content)})

        if not profile.structured_output:
            return content
        if not content.strip():
            return NO_RESPONSE
        try:
            return AgentResponse.model_validate_json(content).to_markdown()
        except ValidationError as exc:
            raise ModelBackendError(f"Model returned an invalid structured answer: {exc}") from exc

    async def stream(self, user_text: str, profile: SkillProfile) -> AsyncIterator[str]:
        payload = self._payload(user_text, profile, stream=True)
        try:
            async with self._client.stream("POST", "/chat/completions", json=payload) as resp:
                if resp.status_code != 200:
                    await resp.aread()
                    raise ModelBackendError(
                        f"Model backend stream HTTP {resp.status_code}: {resp.text[:500]}",
                        status_code=resp.status_code,
                    )
                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data_str = line[len("data:"):].strip()
                    if data_str == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data_str)
                    except json.JSONDecodeError as exc:
                        raise ModelBackendError(f"Malformed stream chunk: {data_str[:200]}") from exc
                    choices = chunk.get("choices") or [{}]
                    token = (choices[0].get("delta") or {}).get("content")
                    if token:
                        yield token
        except httpx.HTTPError as exc:
            raise ModelBackendError(f"Model backend stream failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()
