"""Shared fixtures: settings without environment access and a scripted model backend."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, List, Optional, Sequence

import pytest

from a2a_chatbot.settings import ModelBackendSettings, Settings, StreamingSettings, get_settings
from a2a_chatbot.skills import SkillProfile, build_skill_catalog


def make_settings(**overrides) -> Settings:
    values = dict(
        auth_token=None,
        agent_name="Test Agent",
        agent_description="Agent under test",
        public_url="http://testserver/",
        host="127.0.0.1",
        port=9999,
        skills_config_path=None,
        model_backend=ModelBackendSettings(
            api_key="sk-test",
            base_url="https://llm.test/v1",
            model="test-model",
            timeout=5.0,
        ),
        streaming=StreamingSettings(
            max_wait_ms=5000,
            brief_chunk_count=3,
            research_chunk_count=2,
        ),
    )
    values.update(overrides)
    return Settings(**values)


class FakeBackend:
    """Model backend returning canned answers and fragments."""

    def __init__(
        self,
        answer: str = "## Answer\n- one\n- two",
        fragments: Sequence[str] = ("Hel", "lo", " wor", "ld", "!"),
        fail_after: Optional[int] = None,
        ask_error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.answer = answer
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.ask_error = ask_error
        self.delay = delay
        self.asked: List[tuple] = []
        self.streamed: List[tuple] = []
        self.stream_closed = False
        self.closed = False

    async def ask(self, user_text: str, profile: SkillProfile) -> str:
        self.asked.append((user_text, profile.skill_id))
        if self.ask_error is not None:
            raise self.ask_error
        return self.answer

    async def stream(self, user_text: str, profile: SkillProfile) -> AsyncIterator[str]:
        self.streamed.append((user_text, profile.skill_id))
        try:
            for index, fragment in enumerate(self.fragments):
                if self.fail_after is not None and index >= self.fail_after:
                    raise RuntimeError("backend exploded")
                if self.delay:
                    await asyncio.sleep(self.delay)
                yield fragment
            if self.fail_after is not None and self.fail_after >= len(self.fragments):
                raise RuntimeError("backend exploded")
        finally:
            self.stream_closed = True

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings_factory():
    """Build Settings with keyword overrides."""
    return make_settings


@pytest.fixture
def backend_factory():
    """Build a FakeBackend with scripted answers, fragments or failures."""
    return FakeBackend


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def catalog(settings):
    return build_skill_catalog(settings)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
