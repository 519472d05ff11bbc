"""
HTTP API for a2apy
"""

from .agent_card import build_agent_card
from .app import create_app

__all__ = ['build_agent_card', 'create_app']
