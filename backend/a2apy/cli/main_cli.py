"""
Command-line interface for the a2apy server.

Parses flags, resolves the settings (defaults <- JSON file <- environment
<- flags), then serves the FastAPI app with uvicorn until interrupted.

Usage:
    a2apy --agent-json agents/example/config.json
    a2apy --agent-json agents/my-agent/config.json --port 3001
    a2apy --agent-name "My Agent" --port 8080 --model gpt-4o
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

import uvicorn

from .. import __version__
from ..api.agent_card import AGENT_CARD_PATH, JSONRPC_PATH
from ..api.app import create_app
from ..config.loader import load_environment, resolve_settings
from ..core.errors import ConfigError
from ..services.task_executor import TaskExecutor
from ..utils.logging import configure_logging, mask_credential_value

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="a2apy",
        description="A2A agent server backed by GitHub Copilot sessions",
    )
    parser.add_argument("--agent-json", "--config", "-c", dest="config", metavar="PATH",
                        help="Path to agent JSON config file")
    parser.add_argument("--port", "-p", type=int, help="A2A server port (default: 3000)")
    parser.add_argument("--hostname", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--advertise-host", help="Hostname for agent card URLs (default: localhost)")
    parser.add_argument("--cli-url",
                        help="External Copilot CLI server URL (default: the SDK manages its own CLI process)")
    parser.add_argument("--model", "-m", help="LLM model (default: claude-sonnet-4.5)")
    parser.add_argument("--workspace", "-w", metavar="PATH", help="Workspace directory for context files")
    parser.add_argument("--agent-name", help='Agent display name (default: "Copilot A2A Agent")')
    parser.add_argument("--agent-description", help="Agent description")
    parser.add_argument("--stream-artifacts", dest="stream_artifacts", action="store_true", default=None,
                        help="Stream artifact chunks individually")
    parser.add_argument("--no-stream-artifacts", dest="stream_artifacts", action="store_false",
                        help="Buffer the response into a single artifact (default)")
    parser.add_argument("--log-level", help="Log level: debug | info | warn | error (default: info)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> Tuple[Optional[str], Dict[str, Any]]:
    """Translate parsed flags into (config path, partial config overrides)"""
    overrides: Dict[str, Any] = {}

    server = {
        "port": args.port,
        "hostname": args.hostname,
        "advertiseHost": args.advertise_host,
    }
    copilot = {
        "cliUrl": args.cli_url,
        "model": args.model,
        "workspaceDirectory": args.workspace,
    }
    agent_card = {
        "name": args.agent_name,
        "description": args.agent_description,
    }

    for section, values in (("server", server), ("copilot", copilot), ("agentCard", agent_card)):
        values = {key: value for key, value in values.items() if value is not None}
        if values:
            overrides[section] = values

    if args.stream_artifacts is not None:
        overrides["features"] = {"streamArtifactChunks": args.stream_artifacts}

    if args.log_level:
        overrides["logging"] = {"level": args.log_level}

    return args.config, overrides


def print_banner(settings) -> None:
    base = f"http://{settings.server.advertise_host}:{settings.server.port}"
    print(f"""
A2A agent server
  Agent:         {settings.agent_card.name}
  Bind Address:  {settings.server.hostname}:{settings.server.port}
  Agent Card:    {base}{AGENT_CARD_PATH}
  JSON-RPC:      {base}{JSONRPC_PATH}
  Context:       {base}/context
  Build Context: {base}/context/build  [POST]
  Health Check:  {base}/health
""", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with CLI argument handling."""
    load_environment()
    args = parse_arguments(argv)
    config_path, overrides = build_overrides(args)

    try:
        settings = resolve_settings(config_path, overrides)
    except ConfigError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    level = configure_logging(settings.logging.level)

    if not config_path:
        logger.info("No --agent-json provided, running with built-in defaults")

    copilot = settings.copilot
    logger.info(
        f"Starting a2apy (config={config_path or '(built-in defaults)'}, agent={settings.agent_card.name}, "
        f"port={settings.server.port}, model={copilot.model}, cli_url={copilot.cli_url or '(auto-managed)'}, "
        f"github_token={mask_credential_value(copilot.github_token) if copilot.github_token else '(none)'})"
    )

    executor = TaskExecutor(settings, logger=logging.getLogger("a2apy.executor"))
    app = create_app(executor, settings)
    print_banner(settings)

    uvicorn.run(
        app,
        host=settings.server.hostname,
        port=settings.server.port,
        log_level=logging.getLevelName(level).lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
