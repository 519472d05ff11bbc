"""
Agent Card builder

Builds the A2A agent card advertised at ``/.well-known/agent-card.json`` from
the resolved settings.
"""

import logging
from typing import Any, Dict

from ..config.settings import Settings, SkillSettings

logger = logging.getLogger(__name__)

AGENT_CARD_PATH = "/.well-known/agent-card.json"
LEGACY_AGENT_CARD_PATHS = ("/.well-known/agent.json", "/.well-known/agent-json")
JSONRPC_PATH = "/a2a/jsonrpc"


def _skill(skill: SkillSettings) -> Dict[str, Any]:
    card_skill: Dict[str, Any] = {
        "id": skill.id,
        "name": skill.name,
        "description": skill.description,
        "tags": list(skill.tags),
    }
    if skill.examples:
        card_skill["examples"] = list(skill.examples)
    return card_skill


def build_agent_card(settings: Settings) -> Dict[str, Any]:
    """Agent card with capabilities, skills and the advertised JSON-RPC URL"""
    agent_card = settings.agent_card
    server = settings.server
    host = server.advertise_host or server.hostname or "localhost"
    base_url = f"http://{host}:{server.port}"

    card: Dict[str, Any] = {
        "name": agent_card.name,
        "description": agent_card.description,
        "url": f"{base_url}{JSONRPC_PATH}",
        "version": agent_card.version,
        "capabilities": {
            "streaming": agent_card.streaming,
            "pushNotifications": agent_card.push_notifications,
            "stateTransitionHistory": agent_card.state_transition_history,
        },
        "protocolVersion": agent_card.protocol_version,
        "skills": [_skill(skill) for skill in agent_card.skills],
        "defaultInputModes": list(agent_card.default_input_modes),
        "defaultOutputModes": list(agent_card.default_output_modes),
    }
    if agent_card.provider:
        card["provider"] = {
            "organization": agent_card.provider.organization,
            "url": agent_card.provider.url or "",
        }

    logger.info(f"Agent card built: {card['name']} at {base_url} ({len(card['skills'])} skills)")
    return card
