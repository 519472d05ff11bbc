"""
Settings models for a2apy

Read-only pydantic models for the resolved agent configuration. Config files
use camelCase keys; snake_case field names are accepted as well.
"""

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from . import defaults


class SettingsModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# Agent card

class SkillSettings(SettingsModel):
    id: str
    name: str
    description: str
    tags: List[str] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list)


class ProviderSettings(SettingsModel):
    organization: str
    url: Optional[str] = None


class AgentCardSettings(SettingsModel):
    name: str = defaults.DEFAULT_AGENT_NAME
    description: str = defaults.DEFAULT_AGENT_DESCRIPTION
    protocol_version: str = defaults.DEFAULT_PROTOCOL_VERSION
    version: str = defaults.DEFAULT_AGENT_VERSION
    skills: List[SkillSettings] = Field(default_factory=list)
    default_input_modes: List[str] = Field(default_factory=lambda: ["text"])
    default_output_modes: List[str] = Field(default_factory=lambda: ["text"])
    streaming: bool = True
    push_notifications: bool = False
    state_transition_history: bool = True
    provider: Optional[ProviderSettings] = None


# Network

class ServerSettings(SettingsModel):
    port: int = defaults.DEFAULT_PORT
    hostname: str = defaults.DEFAULT_HOSTNAME
    advertise_host: str = defaults.DEFAULT_ADVERTISE_HOST


# Runtime connection and session defaults

class CopilotSettings(SettingsModel):
    cli_url: str = ""
    github_token: str = Field(default="", repr=False)
    model: str = defaults.DEFAULT_MODEL
    streaming: bool = True
    system_prompt: str = ""
    system_prompt_mode: Literal["append", "replace"] = "append"
    context_file: str = defaults.DEFAULT_CONTEXT_FILE
    context_prompt: str = ""
    workspace_directory: str = ""


class SessionSettings(SettingsModel):
    title_prefix: str = defaults.DEFAULT_SESSION_TITLE_PREFIX
    reuse_by_context: bool = True
    ttl: int = defaults.DEFAULT_SESSION_TTL_MS
    cleanup_interval: int = defaults.DEFAULT_CLEANUP_INTERVAL_MS


class FeatureFlags(SettingsModel):
    # Stream response chunks individually instead of one buffered artifact
    stream_artifact_chunks: bool = False


class TimeoutSettings(SettingsModel):
    prompt: int = defaults.DEFAULT_PROMPT_TIMEOUT_MS


class LoggingSettings(SettingsModel):
    level: str = defaults.DEFAULT_LOG_LEVEL


# Tool servers

class McpHttpServer(SettingsModel):
    type: Literal["http"] = "http"
    url: str
    enabled: bool = True


class McpSseServer(SettingsModel):
    type: Literal["sse"] = "sse"
    url: str
    enabled: bool = True


class McpStdioServer(SettingsModel):
    type: Literal["stdio"] = "stdio"
    command: str
    args: List[str] = Field(default_factory=list)
    env: Optional[Dict[str, str]] = None
    enabled: bool = True


McpServer = Annotated[Union[McpHttpServer, McpSseServer, McpStdioServer], Field(discriminator="type")]


class CustomAgentSettings(SettingsModel):
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    prompt: Optional[str] = None


class Settings(SettingsModel):
    """Complete, resolved agent configuration"""
    agent_card: AgentCardSettings = Field(default_factory=AgentCardSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    copilot: CopilotSettings = Field(default_factory=CopilotSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    mcp: Dict[str, McpServer] = Field(default_factory=dict)
    custom_agents: List[CustomAgentSettings] = Field(default_factory=list)

    @property
    def agent_id(self) -> str:
        """Stable identifier derived from the card name: "My Agent" -> "my-agent" """
        return re.sub(r"\s+", "-", self.agent_card.name.lower())
