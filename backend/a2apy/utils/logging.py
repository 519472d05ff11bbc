"""
Logging utilities for a2apy: level setup, secret redaction and payload
truncation.

Tool arguments and results captured as evidence pass through
``sanitize_payload`` and ``truncate_payload`` before they leave the process,
so credentials never reach trace consumers or logs.
"""

import json
import logging
from typing import Any, Optional

# Keys redacted wherever they appear in a payload (compared lower-cased)
SENSITIVE_KEYS = frozenset({
    'token',
    'access_token',
    'authorization',
    'api_key',
    'apikey',
    'password',
    'secret',
    'credential',
})

REDACTED = '<redacted>'
UNSERIALIZABLE = '<unserializable>'

# Maximum serialized size (chars) of a payload kept in a trace artifact
MAX_PAYLOAD_SIZE = 100_000

LOG_FORMAT = '%(asctime)s [%(levelname)s] [%(name)s] %(message)s'

_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


def parse_level(name: Optional[str]) -> int:
    """
    Map a configured level name to a logging level.

    Unknown or empty names fall back to INFO.
    """
    return _LEVELS.get((name or '').strip().lower(), logging.INFO)


def configure_logging(level: Optional[str] = 'info') -> int:
    """Configure the root logger for the server process and return the level"""
    resolved = parse_level(level)
    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=True)
    logging.getLogger('a2apy').setLevel(resolved)
    return resolved


def sanitize_payload(data: Any) -> Any:
    """
    Recursively redact sensitive keys from a payload.

    Containers are copied and a tuple stays a tuple; every other value passes
    through unchanged.

    Args:
        data: Arbitrary JSON-like value

    Returns:
        New value with sensitive keys replaced by the redaction marker
    """
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if isinstance(key, str) and key.lower() in SENSITIVE_KEYS:
                result[key] = REDACTED
            else:
                result[key] = sanitize_payload(value)
        return result
    if isinstance(data, tuple):
        return tuple(sanitize_payload(item) for item in data)
    if isinstance(data, list):
        return [sanitize_payload(item) for item in data]
    return data


def truncate_payload(data: Any, max_size: int = MAX_PAYLOAD_SIZE) -> Any:
    """
    Replace an oversized payload with a truncation marker.

    Args:
        data: Sanitized payload
        max_size: Ceiling on the serialized size in characters

    Returns:
        The payload unchanged when its serialized form fits, the placeholder
        string when it cannot be serialized, otherwise a marker dict carrying
        the original size and a bounded preview
    """
    try:
        serialized = json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError, RecursionError):
        return UNSERIALIZABLE

    if len(serialized) <= max_size:
        return data

    return {
        '_truncated': True,
        '_original_size': len(serialized),
        'preview': serialized[:max_size],
    }


def safe_repr(obj: Any, max_length: int = 200) -> str:
    """
    Create a safe repr of an object with secrets redacted and length limited.

    Args:
        obj: Object to represent
        max_length: Maximum length of the repr string

    Returns:
        Safe, sanitized repr string
    """
    text = repr(sanitize_payload(obj))
    if len(text) > max_length:
        text = text[:max_length] + '...(truncated)'
    return text


def mask_credential_value(value: Optional[str], show_suffix: int = 4) -> str:
    """Mask a credential for log output, e.g. ``***abcd``"""
    if not value or len(value) < 8:
        return '***'
    return f"***{value[-show_suffix:]}"
