"""
Global pytest configuration and fixtures for a2apy backend tests
"""

import asyncio
import inspect
import os
import sys
from typing import Any, Callable, Dict, List, Optional

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from a2apy.agent.runtime import SessionEventEmitter
from a2apy.config.settings import Settings
from a2apy.config.loader import deep_merge
from a2apy.core.protocol import Message, TaskRequest, TextPart


class FakeSession:
    """In-memory AgentSession; ``script`` runs inside send() to emit events"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.emitter = SessionEventEmitter()
        self.sent: List[str] = []
        self.script: Optional[Callable[["FakeSession", str], Any]] = None
        self.send_error: Optional[BaseException] = None
        self.reply = ""
        self.reply_delay = 0.0
        self.wait_error: Optional[BaseException] = None
        self.wait_timeouts: List[Optional[float]] = []
        self.destroy_calls = 0
        self.destroy_error: Optional[BaseException] = None

    def on(self, kind, handler):
        return self.emitter.on(kind, handler)

    def emit(self, kind, **data):
        return self.emitter.dispatch_raw(kind, data)

    async def send(self, prompt: str) -> None:
        self.sent.append(prompt)
        if self.send_error is not None:
            raise self.send_error
        if self.script is not None:
            result = self.script(self, prompt)
            if inspect.isawaitable(result):
                await result

    async def send_and_wait(self, prompt: str, timeout: Optional[float] = None) -> str:
        self.sent.append(prompt)
        self.wait_timeouts.append(timeout)
        if self.reply_delay:
            await asyncio.sleep(self.reply_delay)
        if self.wait_error is not None:
            raise self.wait_error
        return self.reply

    async def destroy(self) -> None:
        self.destroy_calls += 1
        if self.destroy_error is not None:
            raise self.destroy_error


class FakeRuntime:
    """SessionRuntime producing FakeSessions; ``configure`` is applied to each new session, ``create_gate`` holds the next creation"""

    def __init__(self):
        self.sessions: List[FakeSession] = []
        self.options: List[Dict[str, Any]] = []
        self.configure: Optional[Callable[[FakeSession], None]] = None
        self.start_error: Optional[BaseException] = None
        self.start_calls = 0
        self.stop_calls = 0
        self.create_gate: Optional[asyncio.Event] = None

    async def start(self) -> None:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error

    async def stop(self) -> None:
        self.stop_calls += 1

    async def create_session(self, options: Dict[str, Any]) -> FakeSession:
        gate, self.create_gate = self.create_gate, None
        if gate is not None:
            await gate.wait()
        session = FakeSession(f"session-{len(self.sessions) + 1}")
        if self.configure is not None:
            self.configure(session)
        self.options.append(options)
        self.sessions.append(session)
        return session


class FakeClock:
    """Manually advanced monotonic clock (seconds)"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_settings():
    """Build Settings from partial camelCase sections merged over the defaults"""
    def factory(**sections: Any) -> Settings:
        return Settings.model_validate(deep_merge({}, sections))
    return factory


@pytest.fixture
def make_request():
    """Build a TaskRequest with a single text part (or the given parts)"""
    def factory(
        text: str = "P",
        task_id: str = "task-1",
        context_id: str = "ctx-1",
        parts: Optional[list] = None,
        metadata: Optional[Dict[str, Any]] = None,
        task: Any = None,
    ) -> TaskRequest:
        message = Message(
            message_id=f"msg-{task_id}",
            role="user",
            parts=parts if parts is not None else [TextPart(text=text)],
            context_id=context_id,
            task_id=task_id,
        )
        return TaskRequest(
            task_id=task_id,
            context_id=context_id,
            message=message,
            task=task,
            metadata=metadata or {},
        )
    return factory
