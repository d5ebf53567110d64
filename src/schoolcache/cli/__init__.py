"""
schoolcache CLI Package

Typer-based maintenance commands for the portal cache directory.
"""

from .typer_app import app, run

__all__ = ["app", "run"]
