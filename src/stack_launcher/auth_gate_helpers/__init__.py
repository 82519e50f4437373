"""Helpers for the authentication gate."""

from .terminal import build_terminal_command

__all__ = ["build_terminal_command"]
