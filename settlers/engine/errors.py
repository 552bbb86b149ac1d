"""Error taxonomy for the session core.

Components raise these and never recover locally; ``SessionController`` is the
only place that turns them into the ``ERROR`` state.
"""
from __future__ import annotations

from typing import Optional


class SettlersError(Exception):
    """Base class for every error raised by the session core."""


class GenerationError(SettlersError):
    """The narrative or image capability was unreachable or returned a failure."""


class FormatError(SettlersError):
    """A reply was received but is structurally invalid.

    ``raw_text`` carries the offending reply for diagnostics.
    """

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class HabitatIntegrityError(FormatError):
    """A habitat module list violates the append-only tree invariants."""

    def __init__(self, message: str, module_id: Optional[str] = None, raw_text: str = "") -> None:
        super().__init__(message, raw_text=raw_text)
        self.module_id = module_id
