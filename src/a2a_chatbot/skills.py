"""
Skill profiles and resolution.

A skill profile selects the agent's response style: the system instructions
sent to the model and how streamed tokens are re-buffered into chunks.
Profiles are built once at startup and never mutated afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .a2a.models import AgentSkill
from .settings import Settings

logger = logging.getLogger(__name__)

BRIEF_SKILL = "openai.brief"
RESEARCH_SKILL = "openai.research"

BRIEF_INSTRUCTIONS = """\
Respond as Markdown with a short title ('## ') and 3-5 concise bullet points.
Total length under 90 words. Do not echo the question.
"""

RESEARCH_INSTRUCTIONS = """\
Act as a researcher. Write Markdown with:
- A single line title starting with '## '.
- 3-4 sections, each starting with '###', each containing 3-5 full sentences (short paragraphs).
- Avoid bullets unless a final 2-3 bullet summary at the end.
- Provide depth, trade-offs, and concrete examples. Target 220-320 words.
- Add a final section titled '### References' with 3-8 bullet links or citations for further reading.
Stay focused; do not repeat the user's question.
"""


@dataclass(frozen=True)
class SkillProfile:
    """Instruction template and streaming buffer parameters for one skill."""

    skill_id: str
    name: str
    description: str
    tags: Tuple[str, ...]
    examples: Tuple[str, ...]
    instructions: str
    chunk_count: int
    max_wait: float  # seconds
    structured_output: bool = False

    def to_agent_skill(self) -> AgentSkill:
        return AgentSkill(
            id=self.skill_id,
            name=self.name,
            description=self.description,
            tags=list(self.tags),
            examples=list(self.examples),
            inputModes=["text/plain"],
            outputModes=["text/markdown"],
        )


class SkillCatalog:
    """Read-only registry of skill profiles with a permissive fallback."""

    def __init__(self, profiles: Mapping[str, SkillProfile], default_skill_id: str = BRIEF_SKILL):
        if default_skill_id not in profiles:
            raise ValueError(f"Default skill '{default_skill_id}' is not in the catalog")
        self._profiles = MappingProxyType(dict(profiles))
        self._default_skill_id = default_skill_id

    @property
    def default_profile(self) -> SkillProfile:
        return self._profiles[self._default_skill_id]

    def profiles(self) -> Tuple[SkillProfile, ...]:
        return tuple(self._profiles.values())

    def resolve(self, skill_id: Optional[str]) -> SkillProfile:
        """Map an optional skill id to its profile.

        Null, blank and unknown ids all resolve to the default (brief) profile;
        an unknown id is never an error.
        """
        if skill_id is None or not skill_id.strip():
            return self.default_profile
        profile = self._profiles.get(skill_id)
        if profile is None:
            logger.debug("Unknown skill id, using default", extra={"skill_id": skill_id})
            return self.default_profile
        return profile

    def resolved_skill_id(self, skill_id: Optional[str]) -> str:
        return self.resolve(skill_id).skill_id


def default_profiles(settings: Settings) -> Dict[str, SkillProfile]:
    """Built-in brief and research profiles using the configured buffer defaults."""
    max_wait = settings.streaming.max_wait_ms / 1000.0
    return {
        BRIEF_SKILL: SkillProfile(
            skill_id=BRIEF_SKILL,
            name="Quick bullets",
            description="Fast, concise answers in Markdown bullets (90 words max).",
            tags=("ai", "chat", "openai", "brief"),
            examples=("In 3 bullets, what is HTTP streaming?",),
            instructions=BRIEF_INSTRUCTIONS,
            chunk_count=settings.streaming.brief_chunk_count,
            max_wait=max_wait,
            structured_output=True,
        ),
        RESEARCH_SKILL: SkillProfile(
            skill_id=RESEARCH_SKILL,
            name="Researcher",
            description=(
                "Longer, structured Markdown with sections and richer detail; "
                "streams in multiple chunks."
            ),
            tags=("ai", "chat", "openai", "research"),
            examples=("Deep dive: pros/cons of HTTP streaming vs WebSockets.",),
            instructions=RESEARCH_INSTRUCTIONS,
            chunk_count=settings.streaming.research_chunk_count,
            max_wait=max_wait,
        ),
    }


def _read_yaml_file(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except Exception as exc:
        logger.error("Failed to read YAML file %s: %s", path, exc)
        raise
    if not isinstance(data, dict):
        raise ValueError(f"YAML root must be a mapping, got {type(data).__name__}")
    return data


def _apply_overrides(profile: SkillProfile, overrides: Mapping[str, Any]) -> SkillProfile:
    changes: Dict[str, Any] = {}
    if "name" in overrides:
        changes["name"] = str(overrides["name"])
    if "description" in overrides:
        changes["description"] = str(overrides["description"])
    if "instructions" in overrides:
        changes["instructions"] = str(overrides["instructions"])
    if "chunk_count" in overrides:
        chunk_count = int(overrides["chunk_count"])
        if chunk_count <= 0:
            raise ValueError(f"chunk_count for '{profile.skill_id}' must be positive")
        changes["chunk_count"] = chunk_count
    if "max_wait_ms" in overrides:
        max_wait_ms = int(overrides["max_wait_ms"])
        if max_wait_ms <= 0:
            raise ValueError(f"max_wait_ms for '{profile.skill_id}' must be positive")
        changes["max_wait"] = max_wait_ms / 1000.0
    return replace(profile, **changes)


def load_skill_overrides(path: Path, profiles: Dict[str, SkillProfile]) -> Dict[str, SkillProfile]:
    """Apply per-skill overrides from a YAML file of the form ``skills: {id: {...}}``."""
    data = _read_yaml_file(path)
    skills_config = data.get("skills") or {}
    if not isinstance(skills_config, dict):
        raise ValueError(f"Invalid skills config in {path}: 'skills' must be a mapping")

    updated = dict(profiles)
    for skill_id, overrides in skills_config.items():
        if skill_id not in updated:
            raise ValueError(f"Unknown skill '{skill_id}' in {path}")
        if not isinstance(overrides, dict):
            raise ValueError(f"Overrides for '{skill_id}' in {path} must be a mapping")
        updated[skill_id] = _apply_overrides(updated[skill_id], overrides)

    logger.info("Loaded skill overrides", extra={"path": str(path), "skills": list(skills_config)})
    return updated


def build_skill_catalog(settings: Settings) -> SkillCatalog:
    """Construct the process-wide skill catalog."""
    profiles = default_profiles(settings)
    if settings.skills_config_path:
        profiles = load_skill_overrides(settings.skills_config_path, profiles)
    return SkillCatalog(profiles)
