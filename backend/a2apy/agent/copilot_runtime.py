"""
GitHub Copilot SDK runtime adapter

Wraps ``copilot.CopilotClient`` behind the SessionRuntime contract. The SDK
delivers every session event through a single callback; CopilotSession fans
that callback out into per-kind subscriptions.
"""

import logging
import time
from typing import Any, Dict, Optional

from ..config.settings import CopilotSettings
from ..core.errors import RuntimeAuthenticationError, RuntimeUnavailableError
from .runtime import EventHandler, SessionEventEmitter, SessionEventKind, Unsubscribe

INSTALL_REMEDIATION = (
    "Install it with: gh extension install github/gh-copilot\n"
    "Then authenticate with: gh auth login"
)
AUTH_REMEDIATION = (
    "Run: gh auth login\n"
    "Then verify with: gh copilot --version"
)

_NOT_FOUND_MARKERS = ("ENOENT", "not found", "spawn")
_AUTH_MARKERS = ("auth", "login", "token", "unauthorized")


def classify_start_error(error: BaseException) -> RuntimeUnavailableError:
    """Map a runtime startup failure onto an initialization error with remediation"""
    message = str(error) or type(error).__name__
    if isinstance(error, FileNotFoundError) or any(marker in message for marker in _NOT_FOUND_MARKERS):
        return RuntimeUnavailableError("GitHub Copilot CLI not found.", INSTALL_REMEDIATION)
    lowered = message.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return RuntimeAuthenticationError("GitHub Copilot CLI is not authenticated.", AUTH_REMEDIATION)
    return RuntimeUnavailableError(f"Failed to start GitHub Copilot CLI: {message}")


def build_client_options(copilot: CopilotSettings) -> Dict[str, Any]:
    """Client options: external CLI server, token auth and process working directory"""
    options: Dict[str, Any] = {}
    if copilot.cli_url:
        options["cli_url"] = copilot.cli_url
    if copilot.github_token:
        options["github_token"] = copilot.github_token
    if copilot.workspace_directory:
        options["cwd"] = copilot.workspace_directory
    return options


def _response_text(response: Any) -> str:
    """Extract message content from an SDK response event (object or mapping)"""
    if response is None:
        return ""
    data = response.get("data") if isinstance(response, dict) else getattr(response, "data", None)
    if data is None:
        return ""
    content = data.get("content") if isinstance(data, dict) else getattr(data, "content", None)
    return content or ""


class CopilotSession:
    """AgentSession backed by a native Copilot SDK session"""

    def __init__(self, native: Any, logger: Optional[logging.Logger] = None):
        self._native = native
        self.logger = logger or logging.getLogger(__name__)
        self.session_id: str = getattr(native, "session_id", None) or f"session-{int(time.time() * 1000)}"
        self._emitter = SessionEventEmitter(self.logger)
        self._native_unsubscribe = native.on(self._on_native_event)

    def _on_native_event(self, event: Any) -> None:
        if isinstance(event, dict):
            kind, data = event.get("type"), event.get("data")
        else:
            kind, data = getattr(event, "type", None), getattr(event, "data", None)
        self._emitter.dispatch_raw(kind, data)

    def on(self, kind: SessionEventKind, handler: EventHandler) -> Unsubscribe:
        return self._emitter.on(kind, handler)

    async def send(self, prompt: str) -> None:
        await self._native.send({"prompt": prompt})

    async def send_and_wait(self, prompt: str, timeout: Optional[float] = None) -> str:
        response = await self._native.send_and_wait({"prompt": prompt}, timeout=timeout)
        return _response_text(response)

    async def destroy(self) -> None:
        if callable(self._native_unsubscribe):
            self._native_unsubscribe()
            self._native_unsubscribe = None
        await self._native.destroy()


class CopilotRuntime:
    """SessionRuntime that drives the GitHub Copilot CLI through its SDK"""

    def __init__(self, copilot: CopilotSettings, logger: Optional[logging.Logger] = None):
        self.copilot = copilot
        self.logger = logger or logging.getLogger(__name__)
        self._client: Any = None

    @property
    def is_started(self) -> bool:
        return self._client is not None

    async def start(self) -> None:
        if self._client is not None:
            return

        try:
            from copilot import CopilotClient
        except ImportError as e:
            raise RuntimeUnavailableError(
                "GitHub Copilot SDK is not installed.",
                "Install it with: pip install 'a2apy[copilot]'",
            ) from e

        client = CopilotClient(build_client_options(self.copilot) or None)
        try:
            await client.start()
        except Exception as e:
            self.logger.error(f"Copilot client failed to start: {e}")
            raise classify_start_error(e) from e

        self._client = client
        self.logger.info(f"Copilot client started (cli_url={self.copilot.cli_url or '(auto-managed)'})")

    async def stop(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.stop()
            self.logger.info("Copilot client stopped")

    async def create_session(self, options: Dict[str, Any]) -> CopilotSession:
        if self._client is None:
            raise RuntimeUnavailableError("Copilot runtime has not been started.")
        native = await self._client.create_session(options)
        return CopilotSession(native, logger=self.logger.getChild("session"))
