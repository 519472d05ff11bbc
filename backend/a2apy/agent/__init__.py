# a2apy Agent Module
# Session runtime contract, Copilot SDK adapter and tool evidence hooks

from .copilot_runtime import CopilotRuntime, CopilotSession
from .runtime import AgentSession, SessionEvent, SessionEventKind, SessionRuntime
from .tool_hooks import HookContext, ToolEvidenceRecorder

__all__ = [
    'AgentSession',
    'CopilotRuntime',
    'CopilotSession',
    'HookContext',
    'SessionEvent',
    'SessionEventKind',
    'SessionRuntime',
    'ToolEvidenceRecorder',
]
