"""
HTTP side surface for a2apy

FastAPI application serving the agent card, a health check and the domain
context endpoints. The lifespan starts the executor on startup and shuts it
down on exit.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from ..config.settings import Settings
from ..core.errors import ContextBuildError
from ..services.task_executor import TaskExecutor
from .agent_card import AGENT_CARD_PATH, JSONRPC_PATH, LEGACY_AGENT_CARD_PATHS, build_agent_card

logger = logging.getLogger(__name__)


class ContextBuildRequest(BaseModel):
    """Request model for building the context file."""
    prompt: Optional[str] = None


def create_app(executor: TaskExecutor, settings: Optional[Settings] = None) -> FastAPI:
    """Create the FastAPI app wired to ``executor``"""
    settings = settings or executor.settings
    agent_card = build_agent_card(settings)
    server = settings.server

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the executor with the server and shut it down on exit."""
        logger.info(f"Starting A2A agent {agent_card['name']} on {server.hostname}:{server.port}")
        await executor.initialize()
        yield
        logger.info("Shutting down A2A agent...")
        try:
            await executor.shutdown()
        except Exception as e:
            logger.error(f"Error during executor shutdown: {e}")

    app = FastAPI(
        title=agent_card["name"],
        version=agent_card["version"],
        description=agent_card["description"],
        lifespan=lifespan,
    )
    app.state.executor = executor
    app.state.agent_card = agent_card

    async def serve_agent_card(request: Request):
        """Agent card with ``url`` rewritten to match the caller's Host header"""
        host = request.headers.get("host") or f"{server.advertise_host}:{server.port}"
        proto = request.headers.get("x-forwarded-proto") or "http"
        return JSONResponse(content={**agent_card, "url": f"{proto}://{host}{JSONRPC_PATH}"})

    for path in (AGENT_CARD_PATH, *LEGACY_AGENT_CARD_PATHS):
        app.add_api_route(path, serve_agent_card, methods=["GET"])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "agent": agent_card["name"]}

    @app.get("/context")
    async def get_context():
        """Return the context file as markdown."""
        try:
            content = await executor.get_context_content()
        except Exception as e:
            logger.error(f"Failed to read context: {e}")
            return JSONResponse(status_code=500, content={"error": str(e)})

        if content is None:
            return JSONResponse(
                status_code=404,
                content={"error": "Context file not found. Use POST /context/build to create it."},
            )
        return Response(content=content, media_type="text/markdown")

    @app.post("/context/build")
    async def build_context(body: Optional[ContextBuildRequest] = None):
        """Build or refresh the context file."""
        prompt = body.prompt if body else None
        logger.info(f"Context build requested (custom prompt: {bool(prompt)})")
        try:
            response = await executor.build_context(prompt)
            content = await executor.get_context_content()
        except ContextBuildError as e:
            logger.warning(f"Context build rejected: {e}")
            return JSONResponse(status_code=400, content={"error": str(e)})
        except Exception as e:
            logger.error(f"Context build failed: {e}")
            return JSONResponse(status_code=500, content={"error": str(e)})

        return {
            "status": "completed",
            "message": "Context file built successfully",
            "response": response,
            "context": content,
        }

    return app
