"""
Tool Evidence Recorder for a2apy

Captures tool arguments and results from the session runtime's pre/post
tool-use hooks and publishes each completed call as a ``trace.mcp`` sideband
artifact on the task that owns the session.

Start and end hook calls are correlated by (session id, tool name). Two
concurrent calls of the same tool within one session therefore share a key;
the later start overwrites the earlier record and the unmatched end reports a
fresh call id with zero duration.
"""

import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.event_bus import EventBus
from ..core.event_publisher import TRACE_MCP, publish_trace_artifact
from ..core.protocol import utc_timestamp
from ..utils.logging import safe_repr, sanitize_payload, truncate_payload

ALLOW_DECISION = {"permissionDecision": "allow"}


@dataclass(frozen=True)
class HookContext:
    """Correlation context for the execution currently using a session"""
    bus: EventBus
    task_id: str
    context_id: str
    session_id: str
    agent_id: str
    agent_name: str
    trace_id: str


@dataclass
class ToolCallRecord:
    """In-flight tool call, created by the pre hook and consumed by the post hook"""
    tool_call_id: str
    args: Any
    start_time: float


def _field(obj: Any, *names: str, default: Any = None) -> Any:
    """Read the first present attribute/key among ``names`` from a mapping or object"""
    if obj is None:
        return default
    for name in names:
        if isinstance(obj, Mapping):
            value = obj.get(name)
        else:
            value = getattr(obj, name, None)
        if value is not None:
            return value
    return default


def _is_error_result(result: Any) -> bool:
    return isinstance(result, BaseException) or (isinstance(result, Mapping) and "error" in result)


class ToolEvidenceRecorder:
    """Records tool invocations as trace artifacts"""

    def __init__(self, logger: Optional[logging.Logger] = None, clock: Callable[[], float] = time.time):
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._contexts: Dict[str, List[HookContext]] = {}
        self._latest: Optional[HookContext] = None
        self._active_calls: Dict[Tuple[str, str], ToolCallRecord] = {}

    # Correlation context

    def bind(self, context: HookContext) -> None:
        """Route evidence for ``context.session_id`` to the given task"""
        self._contexts.setdefault(context.session_id, []).append(context)
        self._latest = context

    def release(self, context: HookContext) -> None:
        """
        Drop the binding made for ``context``.

        Other tasks bound to the same session keep receiving its evidence; the
        session's unmatched tool calls are dropped once its last binding goes.
        """
        session_id = context.session_id
        bindings = self._contexts.get(session_id)
        if not bindings or not any(bound is context for bound in bindings):
            return

        bindings[:] = [bound for bound in bindings if bound is not context]
        if not bindings:
            del self._contexts[session_id]
            for key in [key for key in self._active_calls if key[0] == session_id]:
                del self._active_calls[key]

        if self._latest is context:
            remaining = next(reversed(self._contexts.values()), None)
            self._latest = remaining[-1] if remaining else None

    def context_for(self, session_id: str) -> Optional[HookContext]:
        bindings = self._contexts.get(session_id)
        return bindings[-1] if bindings else self._latest

    @property
    def active_call_count(self) -> int:
        return len(self._active_calls)

    # Hooks

    def get_hooks(self) -> Dict[str, Callable]:
        """Hooks mapping passed to session creation"""
        return {
            "on_pre_tool_use": self.on_pre_tool_use,
            "on_post_tool_use": self.on_post_tool_use,
        }

    async def on_pre_tool_use(self, input: Any, invocation: Any = None) -> Dict[str, Any]:
        tool_name = _field(input, "toolName", "tool_name", default="unknown")
        tool_args = _field(input, "toolArgs", "tool_args", default={})
        session_id = _field(invocation, "session_id", "sessionId", default="")

        record = ToolCallRecord(
            tool_call_id=str(uuid.uuid4()),
            args=sanitize_payload(tool_args),
            start_time=self._clock(),
        )
        self._active_calls[(session_id, tool_name)] = record

        self.logger.info(f"Tool call start: {tool_name} ({record.tool_call_id})")
        self.logger.debug(f"Tool call args for {tool_name}: {safe_repr(record.args)}")
        return dict(ALLOW_DECISION)

    async def on_post_tool_use(self, input: Any, invocation: Any = None) -> None:
        tool_name = _field(input, "toolName", "tool_name", default="unknown")
        tool_args = _field(input, "toolArgs", "tool_args", default={})
        tool_result = _field(input, "toolResult", "tool_result")
        session_id = _field(invocation, "session_id", "sessionId", default="")

        now = self._clock()
        record = self._active_calls.pop((session_id, tool_name), None)
        if record is None:
            tool_call_id = str(uuid.uuid4())
            duration_ms = 0
            self.logger.debug(f"Unmatched tool call end: {tool_name}")
        else:
            tool_call_id = record.tool_call_id
            duration_ms = max(0, int(round((now - record.start_time) * 1000)))

        is_error = _is_error_result(tool_result)
        if isinstance(tool_result, BaseException):
            tool_result = {"error": str(tool_result)}

        self.logger.info(f"Tool call end: {tool_name} ({tool_call_id}) error={is_error} duration_ms={duration_ms}")

        context = self.context_for(session_id)
        if context is None:
            return None

        publish_trace_artifact(context.bus, context.task_id, context.context_id, TRACE_MCP, {
            "tool_call_id": tool_call_id,
            "tool": tool_name,
            "agent_id": context.agent_id,
            "agent_name": context.agent_name,
            "trace_id": context.trace_id,
            "request": {
                "method": "tools/call",
                "params": {
                    "name": tool_name,
                    "arguments": truncate_payload(sanitize_payload(tool_args)),
                },
            },
            "response": {
                "result": truncate_payload(sanitize_payload(tool_result)),
                "is_error": is_error,
            },
            "metadata": {
                "duration_ms": duration_ms,
                "timestamp": utc_timestamp(),
                "source": "mcp",
            },
        })
        return None
