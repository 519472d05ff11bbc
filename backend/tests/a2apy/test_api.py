"""
Tests for the HTTP surface: agent card, health check and context endpoints
"""

import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from a2apy.api.agent_card import build_agent_card
from a2apy.api.app import create_app
from a2apy.services.task_executor import TaskExecutor


@pytest.fixture
def app_factory(fake_runtime, make_settings):
    def factory(**sections):
        sections.setdefault("session", {"cleanupInterval": 0})
        executor = TaskExecutor(make_settings(**sections), runtime=fake_runtime)
        return create_app(executor)
    return factory


class TestAgentCard:
    """Agent card construction and serving"""

    def test_build_agent_card(self, make_settings):
        settings = make_settings(
            agentCard={
                "name": "Docs Agent",
                "description": "Answers questions",
                "skills": [
                    {"id": "qa", "name": "Q&A", "description": "Answer", "tags": ["docs"], "examples": ["How?"]},
                    {"id": "sum", "name": "Summarize", "description": "Summaries"},
                ],
                "provider": {"organization": "Acme"},
            },
            server={"port": 4100, "advertiseHost": "agent.local"},
        )

        card = build_agent_card(settings)

        assert card["name"] == "Docs Agent"
        assert card["url"] == "http://agent.local:4100/a2a/jsonrpc"
        assert card["protocolVersion"] == "0.3.0"
        assert card["capabilities"] == {
            "streaming": True,
            "pushNotifications": False,
            "stateTransitionHistory": True,
        }
        assert card["skills"][0] == {
            "id": "qa", "name": "Q&A", "description": "Answer", "tags": ["docs"], "examples": ["How?"],
        }
        assert "examples" not in card["skills"][1]
        assert card["defaultInputModes"] == ["text"]
        assert card["provider"] == {"organization": "Acme", "url": ""}

    def test_no_provider_by_default(self, make_settings):
        assert "provider" not in build_agent_card(make_settings())

    def test_card_url_follows_host_header(self, app_factory):
        client = TestClient(app_factory())

        response = client.get(
            "/.well-known/agent-card.json",
            headers={"host": "agent.example.com:8443", "x-forwarded-proto": "https"},
        )

        assert response.status_code == 200
        assert response.json()["url"] == "https://agent.example.com:8443/a2a/jsonrpc"

    def test_legacy_card_paths(self, app_factory):
        client = TestClient(app_factory(agentCard={"name": "Legacy"}))

        for path in ("/.well-known/agent.json", "/.well-known/agent-json"):
            response = client.get(path)
            assert response.status_code == 200
            assert response.json()["name"] == "Legacy"
            assert response.json()["url"] == "http://testserver/a2a/jsonrpc"


class TestHealth:
    """Health endpoint and lifespan"""

    def test_health(self, app_factory):
        client = TestClient(app_factory(agentCard={"name": "Docs Agent"}))
        response = client.get("/health")
        assert response.json() == {"status": "healthy", "agent": "Docs Agent"}

    def test_lifespan_starts_and_stops_executor(self, app_factory, fake_runtime):
        app = app_factory()

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            assert fake_runtime.start_calls == 1
            assert app.state.executor.is_initialized

        assert fake_runtime.stop_calls == 1


class TestContextEndpoints:
    """Domain context file endpoints"""

    def test_context_missing(self, app_factory, tmp_path):
        client = TestClient(app_factory(copilot={"workspaceDirectory": str(tmp_path)}))

        response = client.get("/context")

        assert response.status_code == 404
        assert "POST /context/build" in response.json()["error"]

    def test_context_served_as_markdown(self, app_factory, tmp_path):
        (tmp_path / "context.md").write_text("# Domain\n", encoding="utf-8")
        client = TestClient(app_factory(copilot={"workspaceDirectory": str(tmp_path)}))

        response = client.get("/context")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/markdown")
        assert response.text == "# Domain\n"

    def test_build_without_prompt_is_rejected(self, app_factory):
        client = TestClient(app_factory())

        response = client.post("/context/build")

        assert response.status_code == 400
        assert "context prompt" in response.json()["error"]

    def test_build_with_prompt(self, app_factory, fake_runtime, tmp_path):
        def configure(session):
            session.reply = "Context written"
            (tmp_path / "context.md").write_text("# Built", encoding="utf-8")

        fake_runtime.configure = configure
        client = TestClient(app_factory(copilot={"workspaceDirectory": str(tmp_path)}))

        response = client.post("/context/build", json={"prompt": "Describe the domain"})

        assert response.status_code == 200
        assert response.json() == {
            "status": "completed",
            "message": "Context file built successfully",
            "response": "Context written",
            "context": "# Built",
        }
        assert fake_runtime.sessions[0].sent == ["Describe the domain"]

    def test_build_failure(self, app_factory, fake_runtime):
        fake_runtime.configure = lambda session: setattr(session, "wait_error", RuntimeError("model offline"))
        client = TestClient(app_factory())

        response = client.post("/context/build", json={"prompt": "Describe"})

        assert response.status_code == 500
        assert response.json() == {"error": "model offline"}
