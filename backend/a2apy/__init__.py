"""
a2apy - A2A task bridge for GitHub Copilot agent sessions

Receives A2A tasks, runs them against stateful Copilot SDK sessions and
republishes the session's events as A2A status and artifact updates.
"""

__version__ = "1.0.0"
