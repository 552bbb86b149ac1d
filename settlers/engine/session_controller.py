"""Session controller: the turn state machine for Settlers of Mars.

States::

    START ──start()──▶ LOADING ──▶ PLAYING ──choose()──▶ LOADING
                          │
                          ├──▶ GAME_OVER
                          └──▶ ERROR          (any) ──reset()──▶ START

Each accepted ``start``/``choose`` runs one turn on a single worker thread and
returns its ``Future``.  While a turn is in flight the state is ``LOADING``
and further ``start``/``choose`` calls are ignored.  ``reset`` bumps the
session epoch, so a turn issued before it finishes without touching the new
session.
"""
from __future__ import annotations

import copy
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional

from config import settings
from settlers.engine.errors import FormatError, GenerationError
from settlers.engine.state import GameState, Session
from settlers.habitat.graph import HabitatGraph, merge
from settlers.habitat.layout import HabitatLayoutEngine, Position
from settlers.nlg.scene import CapabilityProfile, Scene
from settlers.nlg.scene_pipeline import ScenePipeline

logger = logging.getLogger(__name__)


class SessionController:
    """Sole owner and mutator of the :class:`Session`."""

    def __init__(
        self,
        pipeline: Optional[ScenePipeline] = None,
        profile: Optional[CapabilityProfile] = None,
    ) -> None:
        if pipeline is not None and profile is not None and CapabilityProfile(profile) != pipeline.profile:
            raise ValueError(
                f"Profile {CapabilityProfile(profile).value!r} does not match the pipeline's "
                f"{CapabilityProfile(pipeline.profile).value!r}"
            )
        self.pipeline = pipeline or ScenePipeline(profile=profile)
        self.profile = CapabilityProfile(self.pipeline.profile)
        self.layout_engine = HabitatLayoutEngine()

        self._session = Session()
        self._epoch = 0
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="session-turn")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> GameState:
        return self._session.state

    def snapshot(self) -> Session:
        """Deep copy of the session for rendering."""
        with self._lock:
            return copy.deepcopy(self._session)

    def layout(self) -> Dict[str, Position]:
        """Placement of the current habitat."""
        with self._lock:
            habitat = self._session.habitat
        return self.layout_engine.layout(habitat)

    def start(self) -> Optional["Future[Optional[GameState]]"]:
        """Begin a fresh game.  Ignored (returns None) while a turn is loading."""
        with self._lock:
            if self._session.state is GameState.LOADING:
                logger.debug("start() ignored: a turn is already in flight")
                return None
            self._epoch += 1
            self._session = Session(state=GameState.LOADING)
            epoch = self._epoch
        logger.info("Starting new game (epoch %d)", epoch)
        return self._executor.submit(self._run_turn, epoch, "", settings.BEGIN_ACTION, None)

    def choose(self, action: str) -> Optional["Future[Optional[GameState]]"]:
        """Play *action*.  A no-op (returns None) unless the state is ``PLAYING``."""
        with self._lock:
            session = self._session
            if session.state is not GameState.PLAYING or session.current_scene is None:
                logger.debug("choose(%r) ignored in state %s", action, session.state.value)
                return None
            pending_story = session.current_scene.story
            history = session.story_log.history(pending=pending_story)
            session.state = GameState.LOADING
            session.last_error = None
            epoch = self._epoch
        logger.info("Player chose %r (turn %d)", action, len(session.story_log) + 1)
        return self._executor.submit(self._run_turn, epoch, history, action, pending_story)

    def reset(self) -> None:
        """Return to ``START`` with an empty session.  Valid from any state."""
        with self._lock:
            self._epoch += 1
            self._session = Session()
        logger.info("Session reset (epoch %d)", self._epoch)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _is_stale(self, epoch: int) -> bool:
        if epoch != self._epoch:
            logger.warning("Discarding result of turn from epoch %d (now %d)", epoch, self._epoch)
            return True
        return False

    def _run_turn(
        self,
        epoch: int,
        history: str,
        action: str,
        pending_story: Optional[str],
    ) -> Optional[GameState]:
        try:
            scene = self.pipeline.fetch_next_scene(history, action)
            with self._lock:
                if self._is_stale(epoch):
                    return None
                previous = self._session.habitat
            habitat = self._next_habitat(previous, scene)
        except Exception as exc:
            return self._fail(epoch, exc)
        return self._apply(epoch, scene, habitat, pending_story)

    def _next_habitat(self, previous: HabitatGraph, scene: Scene) -> HabitatGraph:
        if not self.profile.tracks_habitat:
            return previous
        return merge(previous, scene.habitat_modules)

    def _apply(
        self,
        epoch: int,
        scene: Scene,
        habitat: HabitatGraph,
        pending_story: Optional[str],
    ) -> Optional[GameState]:
        with self._lock:
            if self._is_stale(epoch):
                return None
            session = self._session
            if pending_story is not None:
                session.story_log.append(pending_story)
            session.habitat = habitat
            if session.inventory.add(scene.new_item):
                logger.info("Collected item %r", scene.new_item)
            session.current_scene = scene
            session.last_error = None
            session.state = GameState.GAME_OVER if scene.game_over else GameState.PLAYING
            logger.info("Turn complete: %s, habitat has %d module(s)", session.state.value, len(habitat))
            if self.profile.tracks_habitat:
                logger.debug("%s", habitat.to_summary())
            return session.state

    def _fail(self, epoch: int, exc: Exception) -> Optional[GameState]:
        message = self._describe(exc)
        with self._lock:
            if self._is_stale(epoch):
                return None
            self._session.state = GameState.ERROR
            self._session.last_error = message
        return GameState.ERROR

    @staticmethod
    def _describe(exc: Exception) -> str:
        if isinstance(exc, FormatError):
            logger.error("Turn failed, invalid reply: %s", exc)
            if exc.raw_text:
                logger.debug("Offending reply: %s", exc.raw_text)
            return f"Received an invalid story format from the AI. {exc}"
        if isinstance(exc, GenerationError):
            logger.error("Turn failed, generation error: %s", exc)
            return f"Transmission failed: {exc}"
        logger.exception("Turn failed unexpectedly")
        return "An unknown error occurred while contacting the AI."
