"""
Configuration loader for a2apy

Resolves the final Settings by merging, in order:
  defaults <- JSON config file <- environment variables <- CLI overrides

Mappings are merged recursively; lists and scalars are replaced. After the
merge, ``$VAR`` tokens in stdio tool-server arguments are replaced with
environment values.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ..core.errors import ConfigError
from .settings import Settings

logger = logging.getLogger(__name__)

_ENV_TOKEN = re.compile(r"\$(\w+)")
_MCP_URL_ENV = re.compile(r"^MCP_(.+)_URL$")


def load_environment(dotenv_path: Optional[str] = None) -> bool:
    """Load a .env file into the process environment without overriding it"""
    loaded = load_dotenv(dotenv_path=dotenv_path, override=False)
    if loaded:
        logger.debug(f"Loaded environment from {dotenv_path or '.env'}")
    return loaded


def _camel(name: str) -> str:
    if "_" not in name:
        return name
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _camel_keys(section: Any) -> Any:
    if not isinstance(section, dict):
        return section
    return {_camel(str(key)): value for key, value in section.items()}


def normalize_keys(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bring a config mapping to camelCase field keys.

    Only field keys are rewritten; tool-server names and the contents of
    nested maps such as stdio ``env`` keep their original spelling.
    """
    result: Dict[str, Any] = {}
    for key, value in raw.items():
        key = _camel(str(key))
        if key == "mcp" and isinstance(value, dict):
            value = {name: _camel_keys(server) for name, server in value.items()}
        elif key == "customAgents" and isinstance(value, list):
            value = [_camel_keys(agent) for agent in value]
        else:
            value = _camel_keys(value)
        result[key] = value
    return result


def deep_merge(target: Mapping[str, Any], source: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``source`` over ``target`` into a new dict; neither input is mutated"""
    result = dict(target)
    for key, src_value in source.items():
        if src_value is None:
            continue
        tgt_value = result.get(key)
        if isinstance(tgt_value, dict) and isinstance(src_value, dict):
            result[key] = deep_merge(tgt_value, src_value)
        else:
            result[key] = src_value
    return result


def load_config_file(path: str) -> Dict[str, Any]:
    """
    Read and parse a JSON config file.

    Raises:
        ConfigError: the file is missing, unreadable, not JSON or not an object
    """
    abs_path = str(Path(path).expanduser().resolve())
    try:
        with open(abs_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(abs_path, str(e)) from e

    if not isinstance(raw, dict):
        raise ConfigError(abs_path, "top-level value must be a JSON object")

    logger.info(f"Loaded config file {abs_path}")
    return normalize_keys(raw)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def load_env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect overrides from well-known environment variables; unset ones are omitted"""
    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}

    server: Dict[str, Any] = {}
    if env.get("PORT"):
        server["port"] = env["PORT"]
    if env.get("HOSTNAME"):
        server["hostname"] = env["HOSTNAME"]
    if env.get("ADVERTISE_HOST"):
        server["advertiseHost"] = env["ADVERTISE_HOST"]
    if server:
        overrides["server"] = server

    copilot: Dict[str, Any] = {}
    if env.get("COPILOT_CLI_URL"):
        copilot["cliUrl"] = env["COPILOT_CLI_URL"]
    if env.get("COPILOT_MODEL"):
        copilot["model"] = env["COPILOT_MODEL"]
    if env.get("WORKSPACE_DIR"):
        copilot["workspaceDirectory"] = env["WORKSPACE_DIR"]
    if env.get("GITHUB_TOKEN"):
        copilot["githubToken"] = env["GITHUB_TOKEN"]
    if copilot:
        overrides["copilot"] = copilot

    if env.get("STREAM_ARTIFACTS"):
        overrides["features"] = {"streamArtifactChunks": _parse_bool(env["STREAM_ARTIFACTS"])}

    if env.get("LOG_LEVEL"):
        overrides["logging"] = {"level": env["LOG_LEVEL"]}

    agent_card: Dict[str, Any] = {}
    if env.get("AGENT_NAME"):
        agent_card["name"] = env["AGENT_NAME"]
    if env.get("AGENT_DESCRIPTION"):
        agent_card["description"] = env["AGENT_DESCRIPTION"]
    if agent_card:
        overrides["agentCard"] = agent_card

    # MCP_<NAME>_URL, e.g. MCP_FILESYSTEM_URL -> mcp.filesystem.url
    for key, value in env.items():
        match = _MCP_URL_ENV.match(key)
        if match and value:
            overrides.setdefault("mcp", {})[match.group(1).lower()] = {"url": value}

    return overrides


def substitute_env_tokens(config: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> None:
    """Replace ``$VAR`` tokens in stdio server args in place; unknown tokens are kept"""
    env = os.environ if environ is None else environ
    for server in (config.get("mcp") or {}).values():
        if not isinstance(server, dict) or server.get("type") != "stdio":
            continue
        args = server.get("args")
        if not isinstance(args, list):
            continue
        server["args"] = [
            _ENV_TOKEN.sub(lambda m: env.get(m.group(1), m.group(0)), arg) if isinstance(arg, str) else arg
            for arg in args
        ]


def resolve_settings(
    config_path: Optional[str] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build the resolved Settings.

    Args:
        config_path: Optional JSON config file
        cli_overrides: Partial config (camelCase or snake_case keys) from the CLI
        environ: Environment mapping, defaults to ``os.environ``

    Raises:
        ConfigError: the file cannot be loaded or the merged config is invalid
    """
    merged: Dict[str, Any] = {}

    if config_path:
        merged = deep_merge(merged, load_config_file(config_path))

    merged = deep_merge(merged, load_env_overrides(environ))

    if cli_overrides:
        merged = deep_merge(merged, normalize_keys(cli_overrides))

    # A URL override for a server the file does not define adds an http server
    for server in (merged.get("mcp") or {}).values():
        if isinstance(server, dict) and "type" not in server:
            server["type"] = "http"

    substitute_env_tokens(merged, environ)

    try:
        return Settings.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(config_path or "<defaults>", str(e)) from e
