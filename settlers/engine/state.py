"""Session state data structures: turn states, story log, inventory, session aggregate."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from config import settings
from settlers.habitat.graph import HabitatGraph
from settlers.nlg.scene import Scene


class GameState(str, Enum):
    START = "START"
    LOADING = "LOADING"
    PLAYING = "PLAYING"
    GAME_OVER = "GAME_OVER"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (GameState.GAME_OVER, GameState.ERROR)


@dataclass(frozen=True)
class StoryLogEntry:
    sequence: int
    story: str


@dataclass
class StoryLog:
    """Append-only story history used to rebuild the prompt each turn."""

    entries: List[StoryLogEntry] = field(default_factory=list)

    def append(self, story: str) -> StoryLogEntry:
        entry = StoryLogEntry(sequence=len(self.entries), story=story)
        self.entries.append(entry)
        return entry

    def history(self, separator: Optional[str] = None, pending: Optional[str] = None) -> str:
        """All logged story text joined in arrival order.

        *pending* is appended as if it were already logged, without logging it.
        """
        sep = settings.HISTORY_SEPARATOR if separator is None else separator
        stories = [e.story for e in self.entries]
        if pending is not None:
            stories.append(pending)
        return sep.join(stories)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class InventoryTracker:
    """Deduplicated, insertion-ordered item names plus the most recent addition."""

    items: List[str] = field(default_factory=list)
    last_added: Optional[str] = None

    def add(self, item: Optional[str]) -> bool:
        """Add *item* if new.  Returns True when added; otherwise clears ``last_added``."""
        name = (item or "").strip()
        if not name or name in self.items:
            self.last_added = None
            return False
        self.items.append(name)
        self.last_added = name
        return True

    def __contains__(self, item: object) -> bool:
        return item in self.items

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class Session:
    """Everything a running game knows.  Mutated only by ``SessionController``."""

    state: GameState = GameState.START
    current_scene: Optional[Scene] = None
    story_log: StoryLog = field(default_factory=StoryLog)
    inventory: InventoryTracker = field(default_factory=InventoryTracker)
    habitat: HabitatGraph = field(default_factory=HabitatGraph)
    last_error: Optional[str] = None
