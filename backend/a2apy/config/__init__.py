"""
Configuration for a2apy
"""

from .loader import (
    deep_merge,
    load_config_file,
    load_env_overrides,
    load_environment,
    resolve_settings,
)
from .settings import (
    AgentCardSettings,
    CopilotSettings,
    CustomAgentSettings,
    FeatureFlags,
    McpHttpServer,
    McpSseServer,
    McpStdioServer,
    ServerSettings,
    SessionSettings,
    Settings,
    SkillSettings,
    TimeoutSettings,
)

__all__ = [
    'AgentCardSettings',
    'CopilotSettings',
    'CustomAgentSettings',
    'FeatureFlags',
    'McpHttpServer',
    'McpSseServer',
    'McpStdioServer',
    'ServerSettings',
    'SessionSettings',
    'Settings',
    'SkillSettings',
    'TimeoutSettings',
    'deep_merge',
    'load_config_file',
    'load_env_overrides',
    'load_environment',
    'resolve_settings',
]
