"""
Command-line interface for the droidpanel package.
"""

from .main import main_cli

__all__ = [
    "main_cli",
]
