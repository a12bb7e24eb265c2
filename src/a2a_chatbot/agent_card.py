"""
A2A Agent Card Generation

Builds the static AgentCard advertised at the well-known discovery URL from
the process settings and the skill catalog.
"""

from __future__ import annotations

import logging

from .a2a.models import AgentCapabilities, AgentCard, TransportProtocol
from .settings import Settings
from .skills import SkillCatalog

logger = logging.getLogger(__name__)


def build_agent_card(settings: Settings, catalog: SkillCatalog) -> AgentCard:
    """
    Generate the AgentCard for this agent.

    Args:
        settings: Process settings (name, description, public URL)
        catalog: Skill catalog whose profiles become the advertised skills

    Returns:
        Immutable AgentCard
    """
    card = AgentCard(
        protocolVersion="0.3.0",
        name=settings.agent_name,
        description=settings.agent_description,
        url=settings.public_url,
        preferredTransport=TransportProtocol.JSONRPC,
        capabilities=AgentCapabilities(
            streaming=True,
            pushNotifications=False,
            stateTransitionHistory=False,
        ),
        defaultInputModes=["text/plain"],
        defaultOutputModes=["text/markdown"],
        skills=[profile.to_agent_skill() for profile in catalog.profiles()],
        supportsAuthenticatedExtendedCard=False,
    )

    logger.info("Generated AgentCard",
                extra={"agent_name": card.name, "skills_count": len(card.skills)})
    return card
