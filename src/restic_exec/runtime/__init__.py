"""Runtime module for restic subprocess execution.

This module provides the generic command engine: concurrent output
collection, the remote stdin bridge and the command lifecycle.
"""

from __future__ import annotations

from .bridge import RemoteStdinBridge
from .collector import collect_output
from .command import CommandOptions, CommandState, GenericCommand

__all__ = [
    "CommandOptions",
    "CommandState",
    "GenericCommand",
    "RemoteStdinBridge",
    "collect_output",
]
