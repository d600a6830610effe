"""Session proxy for wrapping Streamlit's session state mapping."""
from __future__ import annotations

import asyncio
from collections.abc import MutableMapping
from typing import Any

from story_controller import SessionController

CONTROLLER_KEY = "story_controller"
EVENT_LOOP_KEY = "story_event_loop"
LAST_SUBMISSION_KEY = "last_submission_accepted"


class StorySessionProxy:
    """Typed view over a Streamlit ``session_state`` mapping."""

    def __init__(self, backing: MutableMapping[str, Any]):
        self._backing = backing

    def __contains__(self, key: object) -> bool:  # pragma: no cover - mapping helper
        return key in self._backing

    def get(self, key: str, default: Any = None) -> Any:
        return self._backing.get(key, default)

    @property
    def controller(self) -> SessionController | None:
        controller = self._backing.get(CONTROLLER_KEY)
        return controller if isinstance(controller, SessionController) else None

    @controller.setter
    def controller(self, value: SessionController) -> None:
        self._backing[CONTROLLER_KEY] = value

    @property
    def event_loop(self) -> asyncio.AbstractEventLoop | None:
        loop = self._backing.get(EVENT_LOOP_KEY)
        if isinstance(loop, asyncio.AbstractEventLoop) and not loop.is_closed():
            return loop
        return None

    @event_loop.setter
    def event_loop(self, value: asyncio.AbstractEventLoop) -> None:
        self._backing[EVENT_LOOP_KEY] = value

    @property
    def last_submission_accepted(self) -> bool | None:
        return self._backing.get(LAST_SUBMISSION_KEY)

    @last_submission_accepted.setter
    def last_submission_accepted(self, value: bool | None) -> None:
        self._backing[LAST_SUBMISSION_KEY] = value


__all__ = ["CONTROLLER_KEY", "EVENT_LOOP_KEY", "LAST_SUBMISSION_KEY", "StorySessionProxy"]
