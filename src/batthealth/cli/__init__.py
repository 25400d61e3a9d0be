"""CLI module for the battery health assessment engine.

The CLI enables:
- Simulated health test sessions
- Inspection and reset of learned temperature coefficients
- Configuration file generation
"""

from .main import app, create_cli_app

__all__ = ["app", "create_cli_app"]
