"""
Session Registry for a2apy
Maps A2A context ids to agent sessions for multi-turn conversations.
Handles session creation options, reuse within TTL, periodic cleanup of idle
sessions, task tracking and shutdown.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..agent.runtime import AgentSession, SessionRuntime
from ..config.defaults import REPLACE_MODE_PREAMBLE
from ..config.settings import CopilotSettings, McpServer, McpStdioServer, Settings


@dataclass
class SessionEntry:
    """A live session owned by the registry"""
    session_id: str
    session: AgentSession
    created_at: float
    last_used: float


@dataclass(frozen=True)
class SessionLease:
    """Session handed to one task execution; the registry keeps ownership"""
    session_id: str
    session: AgentSession
    is_new: bool


def build_mcp_servers(servers: Dict[str, McpServer]) -> Dict[str, Dict[str, Any]]:
    """Tool-server map for session creation; disabled servers are skipped"""
    result: Dict[str, Dict[str, Any]] = {}
    for name, server in servers.items():
        if not server.enabled:
            continue
        if isinstance(server, McpStdioServer):
            entry: Dict[str, Any] = {
                "type": "stdio",
                "command": server.command,
                "args": list(server.args),
                "tools": ["*"],
            }
            if server.env:
                entry["env"] = dict(server.env)
            result[name] = entry
        else:
            result[name] = {"type": server.type, "url": server.url, "tools": ["*"]}
    return result


def build_system_message(copilot: CopilotSettings) -> Optional[Dict[str, str]]:
    """
    System message injection for the configured prompt.

    ``append`` keeps the runtime's own system message and adds the prompt after
    it. ``replace`` substitutes the whole message with the operational preamble
    followed by the prompt.
    """
    if not copilot.system_prompt:
        return None
    if copilot.system_prompt_mode == "replace":
        return {"mode": "replace", "content": f"{REPLACE_MODE_PREAMBLE}\n{copilot.system_prompt}"}
    return {"mode": "append", "content": copilot.system_prompt}


class SessionRegistry:
    """Owns every live session, keyed by context id"""

    def __init__(
        self,
        runtime: SessionRuntime,
        settings: Settings,
        hooks: Optional[Dict[str, Callable]] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.runtime = runtime
        self.settings = settings
        self.hooks = hooks
        self.logger = logger or logging.getLogger(__name__)
        self._clock = clock

        self._sessions: Dict[str, SessionEntry] = {}
        self._tasks: Dict[str, str] = {}
        self._retired: Dict[str, SessionEntry] = {}
        self._lock = asyncio.Lock()
        self._context_locks: Dict[str, asyncio.Lock] = {}
        self._context_users: Dict[str, int] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    @property
    def ttl_seconds(self) -> float:
        return self.settings.session.ttl / 1000

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    # Session options

    def build_session_options(self) -> Dict[str, Any]:
        """Creation options: model, streaming, tool servers, working directory, system message, hooks, custom agents"""
        copilot = self.settings.copilot
        options: Dict[str, Any] = {}

        if copilot.model:
            options["model"] = copilot.model
        options["streaming"] = copilot.streaming

        mcp_servers = build_mcp_servers(self.settings.mcp)
        if mcp_servers:
            options["mcp_servers"] = mcp_servers

        if copilot.workspace_directory:
            options["working_directory"] = copilot.workspace_directory

        system_message = build_system_message(copilot)
        if system_message:
            options["system_message"] = system_message

        if self.hooks:
            options["hooks"] = self.hooks

        if self.settings.custom_agents:
            options["custom_agents"] = [
                {key: value for key, value in agent.model_dump().items() if key == "name" or value}
                for agent in self.settings.custom_agents
            ]

        return options

    # Lifecycle

    @asynccontextmanager
    async def _context_guard(self, context_id: str):
        """Serialize get_or_create per context id; the lock is dropped with its last user"""
        lock = self._context_locks.setdefault(context_id, asyncio.Lock())
        self._context_users[context_id] = self._context_users.get(context_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._context_users[context_id] -= 1
            if not self._context_users[context_id]:
                del self._context_users[context_id]
                del self._context_locks[context_id]

    async def get_or_create(self, context_id: str) -> SessionLease:
        """
        Return the live session for ``context_id`` or create a new one.

        A session is reused only while reuse is enabled and its age since
        creation is below the TTL. A stale session is destroyed before its
        replacement is created, unless a tracked task is still using it; that
        session is destroyed when its last task is untracked. Sessions requested
        without a context id are returned but not stored.
        """
        if not context_id:
            return await self._create(context_id)

        async with self._context_guard(context_id):
            stale: Optional[SessionEntry] = None
            async with self._lock:
                existing = self._sessions.get(context_id)
                if existing is not None:
                    age = self._clock() - existing.created_at
                    if self.settings.session.reuse_by_context and age < self.ttl_seconds:
                        existing.last_used = self._clock()
                        self.logger.debug(f"Reusing session {existing.session_id} for context {context_id}")
                        return SessionLease(existing.session_id, existing.session, is_new=False)

                    self.logger.info(f"Replacing session {existing.session_id} for context {context_id} (age {age:.0f}s)")
                    del self._sessions[context_id]
                    stale = self._retire(existing)

            if stale is not None:
                await self._destroy_entry(stale)

            lease = await self._create(context_id)
            now = self._clock()
            async with self._lock:
                self._sessions[context_id] = SessionEntry(
                    session_id=lease.session_id,
                    session=lease.session,
                    created_at=now,
                    last_used=now,
                )
            return lease

    async def _create(self, context_id: str) -> SessionLease:
        options = self.build_session_options()
        self.logger.info(
            f"Creating session for context {context_id or '(none)'} "
            f"(model={options.get('model')}, tool_servers={list(options.get('mcp_servers', {}))})"
        )
        session = await self.runtime.create_session(options)
        session_id = getattr(session, "session_id", None) or f"session-{int(time.time() * 1000)}"
        self.logger.info(f"Session {session_id} created for context {context_id or '(none)'}")
        return SessionLease(session_id, session, is_new=True)

    def _retire(self, entry: SessionEntry) -> Optional[SessionEntry]:
        """Entry to destroy now, or None when a tracked task still uses it (caller holds the lock)"""
        if entry.session_id in self._tasks.values():
            self.logger.info(f"Deferring destroy of session {entry.session_id} until its tasks finish")
            self._retired[entry.session_id] = entry
            return None
        return entry

    def get_session_for_context(self, context_id: str) -> Optional[AgentSession]:
        entry = self._sessions.get(context_id)
        return entry.session if entry else None

    async def destroy_session(self, context_id: str) -> None:
        """Destroy and forget the session for ``context_id``; unknown ids are ignored"""
        async with self._lock:
            entry = self._sessions.pop(context_id, None)
            if entry is not None:
                entry = self._retire(entry)
        if entry is not None:
            await self._destroy_entry(entry)

    async def _destroy_entry(self, entry: SessionEntry) -> None:
        try:
            await entry.session.destroy()
        except Exception as e:
            self.logger.warning(f"Session destroy failed for {entry.session_id}: {e}")

    # Task tracking

    def track_task(self, task_id: str, session_id: str) -> None:
        self._tasks[task_id] = session_id

    async def untrack_task(self, task_id: str) -> None:
        """Forget a task; a retired session it was the last user of is destroyed"""
        async with self._lock:
            session_id = self._tasks.pop(task_id, None)
            entry = None
            if session_id is not None and session_id not in self._tasks.values():
                entry = self._retired.pop(session_id, None)
        if entry is not None:
            self.logger.info(f"Destroying retired session {entry.session_id} after task {task_id}")
            await self._destroy_entry(entry)

    def get_session_for_task(self, task_id: str) -> Optional[str]:
        return self._tasks.get(task_id)

    # Cleanup

    async def sweep(self) -> int:
        """
        Destroy and evict sessions idle longer than the TTL.

        Sessions backing a tracked task are skipped. Returns the number evicted.
        """
        async with self._lock:
            now = self._clock()
            pinned = set(self._tasks.values())
            expired = [
                (context_id, entry)
                for context_id, entry in self._sessions.items()
                if now - entry.last_used > self.ttl_seconds and entry.session_id not in pinned
            ]
            for context_id, _ in expired:
                del self._sessions[context_id]

        for context_id, entry in expired:
            self.logger.info(f"Cleaning up expired session {entry.session_id} for context {context_id}")
            await self._destroy_entry(entry)

        return len(expired)

    def start_cleanup(self) -> Optional[asyncio.Task]:
        """Start the periodic sweep; a non-positive interval disables it"""
        interval = self.settings.session.cleanup_interval
        if interval <= 0:
            self.logger.debug("Session cleanup disabled")
            return None
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval / 1000))
        return self._cleanup_task

    async def _cleanup_loop(self, interval: float):
        """Background task that sweeps expired sessions"""
        while True:
            try:
                await asyncio.sleep(interval)
                evicted = await self.sweep()
                if evicted:
                    self.logger.info(f"Cleaned up {evicted} expired sessions")
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in session cleanup task: {e}")

    async def shutdown(self) -> None:
        """Stop the sweep and destroy every session; safe to call repeatedly"""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        async with self._lock:
            entries = list(self._sessions.values()) + list(self._retired.values())
            self._sessions.clear()
            self._retired.clear()

        for entry in entries:
            await self._destroy_entry(entry)

        self.logger.info("Session registry shut down")
