"""
Services module for a2apy
Session lifecycle and task execution
"""

from .session_registry import SessionLease, SessionRegistry
from .task_executor import TaskExecutor

__all__ = [
    'SessionLease',
    'SessionRegistry',
    'TaskExecutor',
]
