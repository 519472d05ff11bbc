"""
Tests for the session registry
"""

import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from a2apy.config.defaults import REPLACE_MODE_PREAMBLE
from a2apy.services.session_registry import SessionRegistry, build_mcp_servers, build_system_message


@pytest.fixture
def registry_factory(fake_runtime, fake_clock, make_settings):
    def factory(hooks=None, **sections):
        sections.setdefault("session", {"cleanupInterval": 0})
        registry = SessionRegistry(fake_runtime, make_settings(**sections), hooks=hooks, clock=fake_clock)
        return registry

    return factory


class TestGetOrCreate:
    """Context to session mapping"""

    @pytest.mark.asyncio
    async def test_reuses_session_within_ttl(self, registry_factory, fake_runtime, fake_clock):
        registry = registry_factory(session={"ttl": 10_000, "cleanupInterval": 0})

        first = await registry.get_or_create("ctx-1")
        fake_clock.advance(5)
        second = await registry.get_or_create("ctx-1")

        assert first.is_new is True
        assert second.is_new is False
        assert second.session is first.session
        assert len(fake_runtime.sessions) == 1

    @pytest.mark.asyncio
    async def test_replaces_session_after_ttl(self, registry_factory, fake_runtime, fake_clock):
        registry = registry_factory(session={"ttl": 10_000, "cleanupInterval": 0})

        first = await registry.get_or_create("ctx-1")
        fake_clock.advance(11)
        second = await registry.get_or_create("ctx-1")

        assert second.is_new is True
        assert second.session_id != first.session_id
        assert fake_runtime.sessions[0].destroy_calls == 1
        assert registry.get_session_for_context("ctx-1") is second.session
        assert registry.session_count == 1

    @pytest.mark.asyncio
    async def test_ttl_measured_from_creation_not_last_use(self, registry_factory, fake_clock):
        registry = registry_factory(session={"ttl": 10_000, "cleanupInterval": 0})

        first = await registry.get_or_create("ctx-1")
        fake_clock.advance(6)
        await registry.get_or_create("ctx-1")
        fake_clock.advance(6)
        third = await registry.get_or_create("ctx-1")

        assert third.is_new is True
        assert third.session_id != first.session_id

    @pytest.mark.asyncio
    async def test_reuse_disabled_creates_fresh_sessions(self, registry_factory, fake_runtime):
        registry = registry_factory(session={"reuseByContext": False, "cleanupInterval": 0})

        first = await registry.get_or_create("ctx-1")
        second = await registry.get_or_create("ctx-1")

        assert first.session_id != second.session_id
        assert fake_runtime.sessions[0].destroy_calls == 1
        assert registry.session_count == 1

    @pytest.mark.asyncio
    async def test_contexts_get_distinct_sessions(self, registry_factory):
        registry = registry_factory()

        first = await registry.get_or_create("ctx-1")
        second = await registry.get_or_create("ctx-2")

        assert first.session_id != second.session_id
        assert registry.session_count == 2

    @pytest.mark.asyncio
    async def test_session_without_context_is_not_stored(self, registry_factory):
        registry = registry_factory()

        lease = await registry.get_or_create("")

        assert lease.is_new is True
        assert registry.session_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_session(self, registry_factory, fake_runtime):
        registry = registry_factory()

        leases = await asyncio.gather(*(registry.get_or_create("ctx-1") for _ in range(5)))

        assert len({lease.session_id for lease in leases}) == 1
        assert len(fake_runtime.sessions) == 1

    @pytest.mark.asyncio
    async def test_slow_creation_does_not_block_other_contexts(self, registry_factory, fake_runtime):
        registry = registry_factory()
        gate = asyncio.Event()
        fake_runtime.create_gate = gate

        slow = asyncio.create_task(registry.get_or_create("ctx-1"))
        await asyncio.sleep(0.01)

        other = await asyncio.wait_for(registry.get_or_create("ctx-2"), timeout=1)
        assert await asyncio.wait_for(registry.sweep(), timeout=1) == 0
        assert not slow.done()

        gate.set()
        lease = await slow

        assert registry.get_session_for_context("ctx-1") is lease.session
        assert registry.get_session_for_context("ctx-2") is other.session
        assert registry.session_count == 2

    @pytest.mark.asyncio
    async def test_waiters_on_a_slow_creation_reuse_its_session(self, registry_factory, fake_runtime):
        registry = registry_factory()
        gate = asyncio.Event()
        fake_runtime.create_gate = gate

        pending = [asyncio.create_task(registry.get_or_create("ctx-1")) for _ in range(3)]
        await asyncio.sleep(0.01)
        gate.set()
        leases = await asyncio.gather(*pending)

        assert [lease.is_new for lease in leases] == [True, False, False]
        assert len(fake_runtime.sessions) == 1


class TestDestroy:
    """Explicit destruction"""

    @pytest.mark.asyncio
    async def test_destroy_session(self, registry_factory, fake_runtime):
        registry = registry_factory()
        await registry.get_or_create("ctx-1")

        await registry.destroy_session("ctx-1")

        assert registry.get_session_for_context("ctx-1") is None
        assert fake_runtime.sessions[0].destroy_calls == 1

    @pytest.mark.asyncio
    async def test_destroy_unknown_context_is_noop(self, registry_factory):
        registry = registry_factory()
        await registry.destroy_session("missing")
        assert registry.session_count == 0

    @pytest.mark.asyncio
    async def test_destroy_failure_is_swallowed(self, registry_factory, fake_runtime):
        fake_runtime.configure = lambda session: setattr(session, "destroy_error", RuntimeError("gone"))
        registry = registry_factory()
        await registry.get_or_create("ctx-1")

        await registry.destroy_session("ctx-1")

        assert registry.session_count == 0


class TestTaskTracking:
    """Task to session association"""

    @pytest.mark.asyncio
    async def test_track_and_untrack(self, registry_factory):
        registry = registry_factory()
        registry.track_task("task-1", "session-1")
        assert registry.get_session_for_task("task-1") == "session-1"

        await registry.untrack_task("task-1")
        await registry.untrack_task("task-1")
        assert registry.get_session_for_task("task-1") is None

    @pytest.mark.asyncio
    async def test_replacement_defers_destroy_while_task_runs(self, registry_factory, fake_runtime):
        registry = registry_factory(session={"reuseByContext": False, "cleanupInterval": 0})
        first = await registry.get_or_create("ctx-1")
        registry.track_task("task-1", first.session_id)

        second = await registry.get_or_create("ctx-1")

        assert registry.get_session_for_context("ctx-1") is second.session
        assert fake_runtime.sessions[0].destroy_calls == 0

        await registry.untrack_task("task-1")
        await registry.untrack_task("task-1")
        assert fake_runtime.sessions[0].destroy_calls == 1
        assert fake_runtime.sessions[1].destroy_calls == 0

    @pytest.mark.asyncio
    async def test_retired_session_waits_for_its_last_task(self, registry_factory, fake_runtime, fake_clock):
        registry = registry_factory(session={"ttl": 10_000, "cleanupInterval": 0})
        first = await registry.get_or_create("ctx-1")
        registry.track_task("task-1", first.session_id)
        registry.track_task("task-2", first.session_id)
        fake_clock.advance(11)

        await registry.get_or_create("ctx-1")
        await registry.untrack_task("task-1")
        assert fake_runtime.sessions[0].destroy_calls == 0

        await registry.untrack_task("task-2")
        assert fake_runtime.sessions[0].destroy_calls == 1

    @pytest.mark.asyncio
    async def test_destroy_session_in_use_is_deferred(self, registry_factory, fake_runtime):
        registry = registry_factory()
        lease = await registry.get_or_create("ctx-1")
        registry.track_task("task-1", lease.session_id)

        await registry.destroy_session("ctx-1")

        assert registry.get_session_for_context("ctx-1") is None
        assert fake_runtime.sessions[0].destroy_calls == 0
        await registry.untrack_task("task-1")
        assert fake_runtime.sessions[0].destroy_calls == 1

    @pytest.mark.asyncio
    async def test_shutdown_destroys_retired_sessions(self, registry_factory, fake_runtime):
        registry = registry_factory(session={"reuseByContext": False, "cleanupInterval": 0})
        first = await registry.get_or_create("ctx-1")
        registry.track_task("task-1", first.session_id)
        await registry.get_or_create("ctx-1")

        await registry.shutdown()
        await registry.untrack_task("task-1")

        assert [session.destroy_calls for session in fake_runtime.sessions] == [1, 1]


class TestCleanup:
    """Idle sweeping and shutdown"""

    @pytest.mark.asyncio
    async def test_sweep_evicts_idle_sessions(self, registry_factory, fake_runtime, fake_clock):
        registry = registry_factory(session={"ttl": 10_000, "cleanupInterval": 0})
        await registry.get_or_create("old")
        fake_clock.advance(8)
        await registry.get_or_create("fresh")
        fake_clock.advance(3)

        evicted = await registry.sweep()

        assert evicted == 1
        assert registry.get_session_for_context("old") is None
        assert registry.get_session_for_context("fresh") is not None
        assert fake_runtime.sessions[0].destroy_calls == 1

    @pytest.mark.asyncio
    async def test_sweep_skips_sessions_in_use(self, registry_factory, fake_clock):
        registry = registry_factory(session={"ttl": 10_000, "cleanupInterval": 0})
        lease = await registry.get_or_create("ctx-1")
        registry.track_task("task-1", lease.session_id)
        fake_clock.advance(20)

        assert await registry.sweep() == 0

        await registry.untrack_task("task-1")
        assert await registry.sweep() == 1

    def test_cleanup_disabled_with_non_positive_interval(self, registry_factory):
        registry = registry_factory(session={"cleanupInterval": 0})
        assert registry.start_cleanup() is None

    @pytest.mark.asyncio
    async def test_cleanup_loop_runs_periodically(self, registry_factory, fake_runtime, fake_clock):
        registry = registry_factory(session={"ttl": 1_000, "cleanupInterval": 10})
        await registry.get_or_create("ctx-1")
        fake_clock.advance(5)

        task = registry.start_cleanup()
        assert task is not None
        assert registry.start_cleanup() is task

        for _ in range(50):
            await asyncio.sleep(0.01)
            if registry.session_count == 0:
                break

        assert registry.session_count == 0
        await registry.shutdown()
        assert task.done()

    @pytest.mark.asyncio
    async def test_shutdown_destroys_all_and_is_idempotent(self, registry_factory, fake_runtime):
        registry = registry_factory()
        await registry.get_or_create("ctx-1")
        await registry.get_or_create("ctx-2")

        await registry.shutdown()
        await registry.shutdown()

        assert registry.session_count == 0
        assert [session.destroy_calls for session in fake_runtime.sessions] == [1, 1]


class TestSessionOptions:
    """Session creation options"""

    def test_minimal_options(self, registry_factory):
        registry = registry_factory(copilot={"model": "gpt-5", "streaming": False})
        assert registry.build_session_options() == {"model": "gpt-5", "streaming": False}

    def test_full_options(self, registry_factory):
        hooks = {"on_pre_tool_use": object(), "on_post_tool_use": object()}
        registry = registry_factory(
            hooks=hooks,
            copilot={"workspaceDirectory": "/work", "systemPrompt": "Be terse."},
            mcp={"docs": {"type": "http", "url": "http://docs"}},
            customAgents=[{"name": "reviewer", "displayName": "Reviewer", "prompt": "Review code."}],
        )

        options = registry.build_session_options()

        assert options["working_directory"] == "/work"
        assert options["system_message"] == {"mode": "append", "content": "Be terse."}
        assert options["hooks"] is hooks
        assert options["mcp_servers"] == {"docs": {"type": "http", "url": "http://docs", "tools": ["*"]}}
        assert options["custom_agents"] == [
            {"name": "reviewer", "display_name": "Reviewer", "prompt": "Review code."},
        ]

    @pytest.mark.asyncio
    async def test_options_reach_the_runtime(self, registry_factory, fake_runtime):
        registry = registry_factory(copilot={"model": "gpt-5"})
        await registry.get_or_create("ctx-1")
        assert fake_runtime.options[0]["model"] == "gpt-5"

    def test_mcp_server_types(self, make_settings):
        settings = make_settings(mcp={
            "web": {"type": "sse", "url": "http://sse"},
            "local": {"type": "stdio", "command": "tool", "args": ["--x"], "env": {"K": "V"}},
            "off": {"type": "http", "url": "http://off", "enabled": False},
        })

        servers = build_mcp_servers(settings.mcp)

        assert servers == {
            "web": {"type": "sse", "url": "http://sse", "tools": ["*"]},
            "local": {"type": "stdio", "command": "tool", "args": ["--x"], "tools": ["*"], "env": {"K": "V"}},
        }

    def test_no_mcp_servers_when_all_disabled(self, registry_factory):
        registry = registry_factory(mcp={"off": {"type": "http", "url": "http://off", "enabled": False}})
        assert "mcp_servers" not in registry.build_session_options()

    def test_replace_mode_system_message(self, make_settings):
        settings = make_settings(copilot={"systemPrompt": "You are Bob.", "systemPromptMode": "replace"})

        message = build_system_message(settings.copilot)

        assert message["mode"] == "replace"
        assert message["content"].startswith(REPLACE_MODE_PREAMBLE)
        assert message["content"].endswith("\nYou are Bob.")

    def test_no_system_message_without_prompt(self, make_settings):
        assert build_system_message(make_settings().copilot) is None
