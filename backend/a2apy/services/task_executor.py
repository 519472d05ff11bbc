"""
Task Executor for a2apy
Bridges inbound A2A tasks to agent sessions.

Each execution moves a task through submitted -> working -> completed, failed
or canceled, and republishes the session's events as A2A status and artifact
updates. Per-task failures never escape ``execute``; they become a terminal
failed status. Timeouts are not failures: they complete the task with
whatever text has accumulated.
"""

import asyncio
import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

from ..agent.copilot_runtime import CopilotRuntime
from ..agent.runtime import AgentSession, EventHandler, SessionEvent, SessionEventKind, SessionRuntime
from ..agent.tool_hooks import HookContext, ToolEvidenceRecorder
from ..config.defaults import DEFAULT_PROMPT_TIMEOUT_MS
from ..config.settings import Settings
from ..core.errors import A2ABridgeError, ContextBuildError
from ..core.event_bus import EventBus
from ..core.event_publisher import (
    new_response_artifact_id,
    publish_buffered_artifact,
    publish_last_chunk,
    publish_status,
    publish_streaming_chunk,
    publish_thought_artifact,
    submitted_task,
)
from ..core.protocol import Message, TaskRequest, TaskState
from .session_registry import SessionRegistry, build_mcp_servers

WORKING_MESSAGE = "Processing request..."
TRUNCATION_NOTICE = "\n\n---\n*Response truncated: processing time limit reached.*"
TIMEOUT_FALLBACK = "The request timed out before a response was produced."
EMPTY_FALLBACK = "No text response was returned."

_CONNECTION_MARKERS = ("ECONNREFUSED", "ENOTFOUND", "connect", "socket")


@dataclass(frozen=True)
class TraceContext:
    """Trace identity propagated by the calling orchestrator"""
    trace_id: str
    parent_agent_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PromptResult:
    text: str
    timed_out: bool = False


def _first(mapping: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value:
            return value
    return None


def extract_trace_context(request: TaskRequest) -> TraceContext:
    """
    Read trace context from request metadata, falling back to the task record.

    The trace id defaults to the context id, then to a fresh uuid.
    """
    meta = request.metadata or (request.task.metadata if request.task else None) or {}
    return TraceContext(
        trace_id=_first(meta, "trace_id", "traceId") or request.context_id or str(uuid.uuid4()),
        parent_agent_id=_first(meta, "parent_agent_id", "parentAgentId"),
        metadata=_first(meta, "propagated_metadata", "propagatedMetadata") or {},
    )


def extract_prompt(message: Message) -> str:
    """Text parts joined with newlines, in order; other parts are ignored"""
    return message.text("\n")


def is_timeout_message(message: str) -> bool:
    return "timeout" in message.lower()


def is_connection_error(error: BaseException) -> bool:
    if isinstance(error, (ConnectionError, socket.gaierror)):
        return True
    message = str(error)
    return any(marker in message for marker in _CONNECTION_MARKERS)


def failure_message(error: BaseException, cli_url: str = "") -> str:
    """User-facing text for a failed task"""
    if cli_url and is_connection_error(error):
        return f"Cannot reach GitHub Copilot CLI server at {cli_url}. Is it running?"
    return f"Error: {str(error) or type(error).__name__}"


def _error_text(value: Any, default: str = "Unknown error") -> str:
    if value is None:
        return default
    if isinstance(value, dict):
        return str(value.get("message") or default)
    return str(getattr(value, "message", None) or value)


class TaskBus:
    """
    Event bus view for one execution.

    Once the task is canceled, further events from the execution are dropped so
    the canceled status stays the only terminal event.
    """

    def __init__(self, bus: EventBus, task_id: str, is_canceled: Callable[[str], bool], logger: logging.Logger):
        self.bus = bus
        self.task_id = task_id
        self._is_canceled = is_canceled
        self.logger = logger

    def publish(self, event: Any) -> None:
        if self._is_canceled(self.task_id):
            self.logger.debug(f"Task {self.task_id} canceled, dropping {getattr(event, 'kind', 'event')}")
            return
        self.bus.publish(event)

    def finished(self) -> None:
        if self._is_canceled(self.task_id):
            return
        self.bus.finished()


class StreamingTurn:
    """
    One streaming prompt against a session.

    Subscribes to every session event kind, sends the prompt without waiting,
    and settles once on session idle, session error or the wall-clock timeout.
    All subscriptions are released when it settles.
    """

    def __init__(
        self,
        bus: EventBus,
        task_id: str,
        context_id: str,
        artifact_id: str,
        stream_chunks: bool,
        logger: logging.Logger,
    ):
        self.bus = bus
        self.task_id = task_id
        self.context_id = context_id
        self.artifact_id = artifact_id
        self.stream_chunks = stream_chunks
        self.logger = logger

        self.text = ""
        self.reasoning = ""
        self.timed_out = False
        self._done: Optional[asyncio.Future] = None

        self._dispatch: Dict[SessionEventKind, EventHandler] = {
            SessionEventKind.MESSAGE_DELTA: self._on_message_delta,
            SessionEventKind.MESSAGE: self._on_message,
            SessionEventKind.REASONING_DELTA: self._on_reasoning_delta,
            SessionEventKind.REASONING: self._on_reasoning,
            SessionEventKind.INTENT: self._on_intent,
            SessionEventKind.TOOL_START: self._on_tool_start,
            SessionEventKind.TOOL_PROGRESS: self._on_tool_progress,
            SessionEventKind.TOOL_COMPLETE: self._on_tool_complete,
            SessionEventKind.SUBAGENT_STARTED: self._on_subagent_started,
            SessionEventKind.SUBAGENT_COMPLETED: self._on_subagent_completed,
            SessionEventKind.SUBAGENT_FAILED: self._on_subagent_failed,
            SessionEventKind.SESSION_ERROR: self._on_session_error,
            SessionEventKind.SESSION_IDLE: self._on_session_idle,
        }

    async def run(self, session: AgentSession, prompt: str, timeout: float) -> PromptResult:
        loop = asyncio.get_running_loop()
        self._done = loop.create_future()
        unsubscribes = [session.on(kind, self._dispatch[kind]) for kind in SessionEventKind]
        timer = loop.call_later(timeout, self._on_timeout, timeout)
        send_task = asyncio.create_task(self._send(session, prompt))

        try:
            await self._done
        finally:
            timer.cancel()
            for unsubscribe in unsubscribes:
                unsubscribe()
            if not send_task.done():
                send_task.cancel()
                try:
                    await send_task
                except asyncio.CancelledError:
                    pass

        text = self.text
        if self.timed_out and text:
            text += TRUNCATION_NOTICE
        return PromptResult(text=text, timed_out=self.timed_out)

    async def _send(self, session: AgentSession, prompt: str) -> None:
        try:
            await session.send(prompt)
        except Exception as e:
            if is_timeout_message(str(e)):
                self.logger.warning(f"send() timed out for task {self.task_id}, resolving with partial content")
                self._settle(timed_out=True)
            else:
                self._settle(error=e)

    def _settle(self, error: Optional[BaseException] = None, timed_out: bool = False) -> None:
        if self._done is None or self._done.done():
            return
        if timed_out:
            self.timed_out = True
        if error is not None:
            self._done.set_exception(error)
        else:
            self._done.set_result(None)

    def _on_timeout(self, timeout: float) -> None:
        if self._done is not None and not self._done.done():
            self.logger.warning(
                f"Prompt timeout after {timeout:.0f}s for task {self.task_id}, "
                f"resolving with partial content ({len(self.text)} chars)"
            )
        self._settle(timed_out=True)

    def _working(self, text: str) -> None:
        publish_status(self.bus, self.task_id, self.context_id, TaskState.WORKING, text)

    # Event handlers

    def _on_message_delta(self, event: SessionEvent) -> None:
        delta = event.get("delta_content", default="")
        if not delta:
            return
        self.text += delta
        if self.stream_chunks:
            publish_streaming_chunk(self.bus, self.task_id, self.context_id, self.artifact_id, delta)

    def _on_message(self, event: SessionEvent) -> None:
        # Only used when no deltas arrived
        content = event.get("content", default="")
        if content and not self.text:
            self.text = content

    def _on_reasoning_delta(self, event: SessionEvent) -> None:
        delta = event.get("delta_content", default="")
        if delta:
            self.reasoning += delta

    def _on_reasoning(self, event: SessionEvent) -> None:
        content = event.get("content") or self.reasoning
        if content:
            self.logger.debug(f"Reasoning complete for task {self.task_id} ({len(content)} chars)")
            publish_thought_artifact(self.bus, self.task_id, self.context_id, content)
            self.reasoning = ""

    def _on_intent(self, event: SessionEvent) -> None:
        intent = event.get("intent")
        if intent:
            self._working(f"Intent: {intent}")

    def _on_tool_start(self, event: SessionEvent) -> None:
        tool_name = event.get("tool_name", "mcp_tool_name", default="unknown")
        self.logger.info(f"Tool execution start for task {self.task_id}: {tool_name}")
        self._working(f"Executing {tool_name}...")

    def _on_tool_progress(self, event: SessionEvent) -> None:
        progress = event.get("progress_message")
        if progress:
            self._working(progress)

    def _on_tool_complete(self, event: SessionEvent) -> None:
        tool_call_id = event.get("tool_call_id", default="")
        if event.get("success", default=True):
            self.logger.info(f"Tool execution complete for task {self.task_id}: {tool_call_id}")
            self._working("Tool completed")
        else:
            error = _error_text(event.get("error"))
            self.logger.warning(f"Tool execution failed for task {self.task_id}: {tool_call_id}: {error}")
            self._working(f"Tool error: {error}")

    def _on_subagent_started(self, event: SessionEvent) -> None:
        name = event.get("agent_display_name", "agent_name", default="subagent")
        self._working(f"Delegating to {name}...")

    def _on_subagent_completed(self, event: SessionEvent) -> None:
        name = event.get("agent_name", default="subagent")
        self._working(f"{name} completed")

    def _on_subagent_failed(self, event: SessionEvent) -> None:
        name = event.get("agent_name", default="subagent")
        self._working(f"{name} failed: {_error_text(event.get('error'))}")

    def _on_session_error(self, event: SessionEvent) -> None:
        message = _error_text(event.get("message"), default="Session error")
        if is_timeout_message(message):
            self.logger.warning(f"Session timeout for task {self.task_id}, treating as completion: {message}")
            self._settle(timed_out=True)
        else:
            self.logger.error(f"Session error for task {self.task_id}: {message}")
            self._settle(error=A2ABridgeError(message))

    def _on_session_idle(self, event: SessionEvent) -> None:
        self._settle()


class TaskExecutor:
    """Executes A2A tasks against agent sessions"""

    def __init__(
        self,
        settings: Settings,
        runtime: Optional[SessionRuntime] = None,
        recorder: Optional[ToolEvidenceRecorder] = None,
        registry: Optional[SessionRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.runtime = runtime or CopilotRuntime(settings.copilot, logger=self.logger.getChild("runtime"))
        self.recorder = recorder or ToolEvidenceRecorder(logger=self.logger.getChild("tool_hooks"))
        self.registry = registry or SessionRegistry(
            self.runtime,
            settings,
            hooks=self.recorder.get_hooks(),
            logger=self.logger.getChild("sessions"),
        )

        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._running: Set[str] = set()
        self._canceled: Set[str] = set()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def prompt_timeout(self) -> float:
        """Prompt timeout in seconds"""
        timeout_ms = self.settings.timeouts.prompt
        if timeout_ms <= 0:
            timeout_ms = DEFAULT_PROMPT_TIMEOUT_MS
        return timeout_ms / 1000

    # Lifecycle

    async def initialize(self):
        """Start the runtime and the session cleanup sweep"""
        async with self._init_lock:
            if self._initialized:
                return
            await self.runtime.start()
            self.registry.start_cleanup()
            self._initialized = True
            self.logger.info(
                f"Executor initialized (model={self.settings.copilot.model}, "
                f"tool_servers={list(self.settings.mcp)})"
            )

    async def shutdown(self):
        """Destroy all sessions and stop the runtime"""
        await self.registry.shutdown()
        await self.runtime.stop()
        self._initialized = False
        self.logger.info("Executor shut down")

    def is_canceled(self, task_id: str) -> bool:
        return task_id in self._canceled

    # Execution

    async def execute(self, request: TaskRequest, bus: EventBus) -> None:
        """Run one task to a terminal state; never raises"""
        task_id = request.task_id
        context_id = request.context_id
        trace = extract_trace_context(request)
        out = TaskBus(bus, task_id, self.is_canceled, self.logger)
        hook_context: Optional[HookContext] = None
        started = time.monotonic()

        self._running.add(task_id)
        try:
            await self.initialize()

            if request.task is None:
                out.publish(submitted_task(task_id, context_id, request.message))
            publish_status(out, task_id, context_id, TaskState.WORKING, WORKING_MESSAGE)

            lease = await self.registry.get_or_create(context_id)
            session_id = lease.session_id
            self.registry.track_task(task_id, session_id)
            hook_context = HookContext(
                bus=out,
                task_id=task_id,
                context_id=context_id,
                session_id=session_id,
                agent_id=self.settings.agent_id,
                agent_name=self.settings.agent_card.name,
                trace_id=trace.trace_id,
            )
            self.recorder.bind(hook_context)

            prompt = extract_prompt(request.message)
            self.logger.info(f"Sending prompt for task {task_id} to session {session_id} ({len(prompt)} chars, trace {trace.trace_id})")

            chunked = self.settings.features.stream_artifact_chunks
            artifact_id = new_response_artifact_id()

            if self.settings.copilot.streaming:
                turn = StreamingTurn(out, task_id, context_id, artifact_id, chunked, self.logger)
                result = await turn.run(lease.session, prompt, self.prompt_timeout)
            else:
                result = await self._send_and_wait(lease.session, prompt, task_id)

            text = result.text or (TIMEOUT_FALLBACK if result.timed_out else EMPTY_FALLBACK)

            if chunked:
                publish_last_chunk(out, task_id, context_id, artifact_id, text)
            else:
                publish_buffered_artifact(out, task_id, context_id, text)
            publish_status(out, task_id, context_id, TaskState.COMPLETED, final=True)
            out.finished()
            self.logger.info(f"Task {task_id} completed ({len(text)} chars, {time.monotonic() - started:.1f}s)")

        except Exception as e:
            message = failure_message(e, self.settings.copilot.cli_url)
            self.logger.error(f"Task {task_id} failed: {e}")
            publish_status(out, task_id, context_id, TaskState.FAILED, message, final=True)
            out.finished()

        finally:
            if hook_context is not None:
                self.recorder.release(hook_context)
            await self.registry.untrack_task(task_id)
            self._running.discard(task_id)
            self._canceled.discard(task_id)

    async def _send_and_wait(self, session: AgentSession, prompt: str, task_id: str) -> PromptResult:
        timeout = self.prompt_timeout
        try:
            text = await asyncio.wait_for(session.send_and_wait(prompt, timeout=timeout), timeout)
            return PromptResult(text=text or "")
        except (asyncio.TimeoutError, TimeoutError):
            self.logger.warning(f"Prompt timed out after {timeout:.0f}s for task {task_id}")
            return PromptResult(text="", timed_out=True)
        except Exception as e:
            if not is_timeout_message(str(e)):
                raise
            self.logger.warning(f"Prompt timed out for task {task_id}: {e}")
            return PromptResult(text="", timed_out=True)

    async def cancel_task(self, task_id: str, bus: EventBus, context_id: str = "") -> None:
        """
        Mark a task canceled. Advisory only: the session call keeps running and
        its session is recycled by the registry on a later request.
        """
        self.logger.info(f"Cancel requested for task {task_id}")
        session_id = self.registry.get_session_for_task(task_id)
        if session_id:
            self.logger.info(f"Session {session_id} for task {task_id} will be recycled on next use")
        if task_id in self._running:
            self._canceled.add(task_id)

        try:
            publish_status(bus, task_id, context_id, TaskState.CANCELED, final=True)
            bus.finished()
        except Exception as e:
            self.logger.error(f"Failed to publish cancellation for task {task_id}: {e}")

    # Domain context

    async def build_context(self, prompt: Optional[str] = None) -> str:
        """
        Build the domain context file by prompting a dedicated session.

        Returns the assistant's response text.
        """
        copilot = self.settings.copilot
        context_prompt = prompt or copilot.context_prompt
        if not context_prompt:
            raise ContextBuildError("No context prompt provided and no default context prompt configured")

        await self.initialize()

        options: Dict[str, Any] = {}
        if copilot.model:
            options["model"] = copilot.model
        mcp_servers = build_mcp_servers(self.settings.mcp)
        if mcp_servers:
            options["mcp_servers"] = mcp_servers

        session = await self.runtime.create_session(options)
        session_id = getattr(session, "session_id", None) or "context-build"
        self.logger.info(f"Building context in session {session_id} (file {copilot.context_file})")

        try:
            text = await session.send_and_wait(context_prompt, timeout=self.prompt_timeout)
        finally:
            try:
                await session.destroy()
            except Exception as e:
                self.logger.warning(f"Context session destroy failed for {session_id}: {e}")

        text = text or ""
        self.logger.info(f"Context build complete in session {session_id} ({len(text)} chars)")
        return text

    async def get_context_content(self) -> Optional[str]:
        """Read the context file from the workspace; None when it does not exist"""
        copilot = self.settings.copilot
        if not copilot.workspace_directory:
            self.logger.warning("No workspace directory configured, cannot read context file")
            return None

        path = Path(copilot.workspace_directory) / (copilot.context_file or "context.md")
        try:
            return path.read_text(encoding="utf-8")
        except OSError:
            return None
