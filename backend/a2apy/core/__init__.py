"""
Core module for a2apy
A2A protocol value types, the event publisher, the event bus contract and errors
"""

from .errors import (
    A2ABridgeError,
    ConfigError,
    ContextBuildError,
    RuntimeAuthenticationError,
    RuntimeUnavailableError,
    UnknownSessionEventError,
)
from .event_bus import EventBus, InMemoryEventBus
from .protocol import (
    Artifact,
    DataPart,
    Message,
    Task,
    TaskArtifactUpdateEvent,
    TaskRequest,
    TaskState,
    TaskStatus,
    TaskStatusUpdateEvent,
    TextPart,
)

__all__ = [
    'A2ABridgeError',
    'ConfigError',
    'ContextBuildError',
    'RuntimeAuthenticationError',
    'RuntimeUnavailableError',
    'UnknownSessionEventError',
    'EventBus',
    'InMemoryEventBus',
    'Artifact',
    'DataPart',
    'Message',
    'Task',
    'TaskArtifactUpdateEvent',
    'TaskRequest',
    'TaskState',
    'TaskStatus',
    'TaskStatusUpdateEvent',
    'TextPart',
]
