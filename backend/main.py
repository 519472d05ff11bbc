#!/usr/bin/env python3
"""
Main entry point for the a2apy server.

Serves an A2A agent backed by GitHub Copilot sessions.

Run with: python main.py --agent-json agents/example/config.json
"""

import sys

from dotenv import load_dotenv

# Load environment variables
load_dotenv(dotenv_path="../.env")  # Load from parent directory
load_dotenv()

from a2apy.cli.main_cli import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
