"""Turn-taking controller for the write → illustrate → write story loop.

Each accepted submission runs to completion before the next one is accepted.
While a Gemini call is awaited the phase is ``WRITING`` or ``PAINTING``; that
phase is the only busy signal and any submission arriving meanwhile is
ignored without touching the log.

    SETUP --submit(topic)--> WRITING --ok--> AWAITING_ART
                                     --error--> SETUP
    AWAITING_ART --submit(scene)--> PAINTING --ok--> WRITING --ok--> AWAITING_ART
                                             --error--> AWAITING_ART
                                                        --error--> AWAITING_ART

Failures never escape ``submit``: they become an assistant notice in the
transcript and the phase goes back to the step the user can retry. When the
illustration succeeds but the follow-up chapter fails, the image turn stays
in the transcript.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Callable

from app_constants import (
    CHAPTER_FAILURE_MESSAGE,
    ILLUSTRATION_FAILURE_MESSAGE,
    START_FAILURE_MESSAGE,
)
from prompts.story import build_next_chapter_prompt, build_opening_prompt
from services.gemini_api import GenerationError
from story_session import (
    Origin,
    SessionPhase,
    SessionState,
    SessionView,
    TurnKind,
    TurnRecord,
)
from telemetry import emit_story_event

_LOGGER = logging.getLogger(__name__)


def _threshold_from_env() -> int:
    raw = (os.getenv("STORY_FAILURE_ALERT_THRESHOLD") or "").strip()
    try:
        return max(1, int(raw)) if raw else 3
    except ValueError:
        return 3


FAILURE_ALERT_THRESHOLD = _threshold_from_env()

SessionListener = Callable[[SessionView], None]


class SessionController:
    """Owns the active ``SessionState`` and drives the writer and illustrator."""

    def __init__(
        self,
        writer: Any,
        illustrator: Any,
        *,
        failure_alert_threshold: int | None = None,
    ):
        self._writer = writer
        self._illustrator = illustrator
        self._failure_alert_threshold = failure_alert_threshold or FAILURE_ALERT_THRESHOLD
        self._listeners: list[SessionListener] = []
        self._state = self._fresh_state()

    # Read side -------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    def view(self) -> SessionView:
        return SessionView.from_state(self._state)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call ``listener`` with a fresh view after every phase change or append."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # Commands --------------------------------------------------------------------
    async def submit(self, text: str) -> bool:
        """Handle one user submission. Returns ``False`` when it was ignored."""

        state = self._state
        if state.phase.is_busy:
            _LOGGER.debug("Ignoring submission while %s", state.phase.value)
            return False

        user_text = (text or "").strip()
        if not user_text:
            return False

        if state.phase is SessionPhase.SETUP:
            await self._start_story(state, user_text)
        else:
            await self._illustrate_and_continue(state, user_text)
        return True

    def new_story(self) -> None:
        """Discard the current story and start over from the greeting."""

        previous = self._state
        self._state = self._fresh_state()
        _LOGGER.info("Story %s reset from %s", previous.session_id, previous.phase.value)
        emit_story_event(
            action="story reset",
            result="success",
            session_id=previous.session_id,
            params=[previous.phase.value, len(previous.log)],
        )
        self._notify()

    # Pipeline steps --------------------------------------------------------------
    async def _start_story(self, state: SessionState, topic: str) -> None:
        self._append(state, Origin.USER, TurnKind.TEXT, topic)
        self._set_phase(state, SessionPhase.WRITING)

        try:
            chapter = await self._writer.send(state.writer_session, build_opening_prompt(topic))
        except Exception as exc:
            if self._is_current(state):
                self._fail(state, "story start", exc, START_FAILURE_MESSAGE, SessionPhase.SETUP)
            return

        if not self._is_current(state):
            return
        self._accept_chapter(state, chapter, action="story start", detail=topic)

    async def _illustrate_and_continue(self, state: SessionState, scene: str) -> None:
        self._append(state, Origin.USER, TurnKind.TEXT, scene)
        self._set_phase(state, SessionPhase.PAINTING)

        try:
            image_ref = await self._illustrator.generate(scene, state.last_chapter_text)
        except Exception as exc:
            if self._is_current(state):
                self._fail(state, "illustration", exc, ILLUSTRATION_FAILURE_MESSAGE, SessionPhase.AWAITING_ART)
            return

        if not self._is_current(state):
            return
        self._append(state, Origin.ASSISTANT, TurnKind.IMAGE, image_ref)
        emit_story_event(action="illustration", result="success", session_id=state.session_id, params=[scene])

        self._set_phase(state, SessionPhase.WRITING)
        try:
            chapter = await self._writer.send(state.writer_session, build_next_chapter_prompt(scene))
        except Exception as exc:
            if self._is_current(state):
                self._fail(state, "chapter", exc, CHAPTER_FAILURE_MESSAGE, SessionPhase.AWAITING_ART)
            return

        if not self._is_current(state):
            return
        self._accept_chapter(state, chapter, action="chapter", detail=scene)

    # Helpers ---------------------------------------------------------------------
    def _fresh_state(self) -> SessionState:
        return SessionState(writer_session=self._writer.create_session())

    def _is_current(self, state: SessionState) -> bool:
        if state is self._state:
            return True
        _LOGGER.info("Dropping late result for story %s after reset", state.session_id)
        return False

    def _accept_chapter(self, state: SessionState, chapter: str, *, action: str, detail: str) -> None:
        self._append(state, Origin.ASSISTANT, TurnKind.TEXT, chapter)
        state.last_chapter_text = chapter
        state.consecutive_failures = 0
        emit_story_event(action=action, result="success", session_id=state.session_id, params=[detail])
        self._set_phase(state, SessionPhase.AWAITING_ART)

    def _fail(
        self,
        state: SessionState,
        action: str,
        exc: Exception,
        notice: str,
        retry_phase: SessionPhase,
    ) -> None:
        if isinstance(exc, GenerationError):
            _LOGGER.warning("%s failed for story %s: %s", action, state.session_id, exc)
        else:
            _LOGGER.error("%s failed unexpectedly for story %s", action, state.session_id, exc_info=exc)

        state.consecutive_failures += 1
        if state.consecutive_failures >= self._failure_alert_threshold:
            _LOGGER.warning(
                "Story %s has failed %d times in a row (last step: %s)",
                state.session_id,
                state.consecutive_failures,
                action,
            )

        emit_story_event(
            action=action,
            result="fail",
            session_id=state.session_id,
            params=[f"{type(exc).__name__}: {exc}", state.consecutive_failures],
        )
        self._append(state, Origin.ASSISTANT, TurnKind.TEXT, notice)
        self._set_phase(state, retry_phase)

    def _append(self, state: SessionState, origin: Origin, kind: TurnKind, payload: str) -> TurnRecord:
        record = state.log.append(origin, kind, payload)
        self._notify()
        return record

    def _set_phase(self, state: SessionState, phase: SessionPhase) -> None:
        state.phase = phase
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.view()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                _LOGGER.exception("Session listener raised; continuing")


__all__ = ["FAILURE_ALERT_THRESHOLD", "SessionController", "SessionListener"]
