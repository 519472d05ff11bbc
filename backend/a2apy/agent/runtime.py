"""
Agent Session Runtime Contract for a2apy

Defines the downstream interface the bridge drives: a runtime that creates
sessions, and sessions that accept prompts and emit a stream of typed events.

Session events form a closed set (``SessionEventKind``). Runtime adapters
translate their native events through ``SessionEventEmitter.dispatch_raw``;
kinds outside the set are logged and dropped so protocol drift is visible.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..core.errors import UnknownSessionEventError


class SessionEventKind(str, Enum):
    """Every event kind a session may emit"""
    MESSAGE_DELTA = "assistant.message_delta"
    MESSAGE = "assistant.message"
    REASONING_DELTA = "assistant.reasoning_delta"
    REASONING = "assistant.reasoning"
    INTENT = "assistant.intent"
    TOOL_START = "tool.execution_start"
    TOOL_PROGRESS = "tool.execution_progress"
    TOOL_COMPLETE = "tool.execution_complete"
    SUBAGENT_STARTED = "subagent.started"
    SUBAGENT_COMPLETED = "subagent.completed"
    SUBAGENT_FAILED = "subagent.failed"
    SESSION_ERROR = "session.error"
    SESSION_IDLE = "session.idle"

    @classmethod
    def parse(cls, value: Any) -> "SessionEventKind":
        """Resolve a raw kind string; unknown kinds raise UnknownSessionEventError"""
        if isinstance(value, cls):
            return value
        raw = getattr(value, "value", value)
        try:
            return cls(raw)
        except ValueError:
            raise UnknownSessionEventError(str(raw)) from None


@dataclass(frozen=True)
class SessionEvent:
    """A single event emitted by a session; ``data`` keys are snake_case"""
    kind: SessionEventKind
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, *keys: str, default: Any = None) -> Any:
        """Return the first present, non-None value among ``keys``"""
        for key in keys:
            value = self.data.get(key)
            if value is not None:
                return value
        return default


EventHandler = Callable[[SessionEvent], None]
Unsubscribe = Callable[[], None]


class AgentSession(Protocol):
    """A stateful conversation with the agent runtime"""
    session_id: str

    def on(self, kind: SessionEventKind, handler: EventHandler) -> Unsubscribe:
        ...

    async def send(self, prompt: str) -> None:
        ...

    async def send_and_wait(self, prompt: str, timeout: Optional[float] = None) -> str:
        ...

    async def destroy(self) -> None:
        ...


class SessionRuntime(Protocol):
    """Factory for agent sessions"""

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def create_session(self, options: Dict[str, Any]) -> AgentSession:
        ...


_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def to_snake(name: str) -> str:
    """deltaContent -> delta_content"""
    return _CAMEL_BOUNDARY.sub('_', name).lower()


def normalize_event_data(data: Any) -> Dict[str, Any]:
    """Flatten a native event payload (mapping or object) into a snake_case dict"""
    if data is None:
        return {}
    if isinstance(data, dict):
        items = data.items()
    elif hasattr(data, "__dict__"):
        items = vars(data).items()
    else:
        return {"value": data}
    return {to_snake(str(key)): value for key, value in items}


class SessionEventEmitter:
    """
    Per-kind subscription table shared by session implementations.

    Handlers run synchronously in subscription order. A failing handler is
    logged and does not prevent the remaining handlers from running.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._handlers: Dict[SessionEventKind, List[EventHandler]] = {kind: [] for kind in SessionEventKind}
        self.logger = logger or logging.getLogger(__name__)
        self._unknown_kinds: set = set()

    def on(self, kind: SessionEventKind, handler: EventHandler) -> Unsubscribe:
        """Subscribe ``handler`` to ``kind``; the returned callable unsubscribes it"""
        kind = SessionEventKind.parse(kind)
        handlers = self._handlers[kind]
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, kind: Optional[SessionEventKind] = None) -> int:
        if kind is not None:
            return len(self._handlers[SessionEventKind.parse(kind)])
        return sum(len(handlers) for handlers in self._handlers.values())

    def emit(self, event: SessionEvent) -> None:
        for handler in list(self._handlers[event.kind]):
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Session event handler failed for {event.kind.value}: {e}")

    def dispatch_raw(self, kind: Any, data: Any = None) -> Optional[SessionEvent]:
        """
        Translate a native (kind, payload) pair and emit it.

        Returns the emitted event, or None when the kind is not recognized.
        """
        try:
            parsed = SessionEventKind.parse(kind)
        except UnknownSessionEventError as e:
            if e.kind not in self._unknown_kinds:
                self._unknown_kinds.add(e.kind)
                self.logger.warning(f"Dropping session event: {e}")
            else:
                self.logger.debug(f"Dropping session event: {e}")
            return None
        event = SessionEvent(kind=parsed, data=normalize_event_data(data))
        self.emit(event)
        return event
