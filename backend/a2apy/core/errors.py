"""
Error types for the a2apy bridge

Initialization errors (runtime missing, not authenticated, bad config) are
raised to the process boundary. Per-task errors never leave the executor;
they are converted into terminal failed events.
"""

from typing import Optional


class A2ABridgeError(Exception):
    """Base error for all a2apy errors"""
    pass


class RuntimeUnavailableError(A2ABridgeError):
    """Raised when the agent runtime cannot be found or started"""

    def __init__(self, message: str, remediation: Optional[str] = None):
        self.remediation = remediation
        if remediation:
            message = f"{message}\n{remediation}"
        super().__init__(message)


class RuntimeAuthenticationError(RuntimeUnavailableError):
    """Raised when the agent runtime is installed but not authenticated"""
    pass


class ConfigError(A2ABridgeError):
    """Raised when a configuration file cannot be read or validated"""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f'Failed to load config file "{path}": {reason}')


class UnknownSessionEventError(A2ABridgeError):
    """Raised when the runtime emits an event kind outside the known set"""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown session event kind: {kind!r}")


class ContextBuildError(A2ABridgeError):
    """Raised when the domain context file cannot be built"""
    pass
