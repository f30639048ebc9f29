"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes returned by ``siteprov``."""

    OK = 0
    FATAL = 1
    CONFIG = 2
