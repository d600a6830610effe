"""Session state helpers for the Streamlit app."""
from __future__ import annotations

import asyncio
from typing import Callable

import streamlit as st

from gemini_client import IllustratorClient, WriterClient
from session_proxy import StorySessionProxy
from story_controller import SessionController


def _proxy() -> StorySessionProxy:
    """Return a proxy around the current Streamlit session state."""

    return StorySessionProxy(st.session_state)


def build_controller() -> SessionController:
    return SessionController(WriterClient(), IllustratorClient())


def ensure_state(factory: Callable[[], SessionController] = build_controller) -> SessionController:
    """Return the browser session's controller, creating it on first use."""

    proxy = _proxy()
    controller = proxy.controller
    if controller is None:
        controller = factory()
        proxy.controller = controller
        proxy.last_submission_accepted = None
    return controller


def submit_text(text: str, factory: Callable[[], SessionController] = build_controller) -> bool:
    """Run one submission to completion on the session's own event loop.

    The async Gemini client binds to the loop it first runs on, so every
    rerun of the script reuses the same loop instead of ``asyncio.run``.
    """

    proxy = _proxy()
    controller = ensure_state(factory)
    loop = proxy.event_loop
    if loop is None:
        loop = asyncio.new_event_loop()
        proxy.event_loop = loop
    accepted = loop.run_until_complete(controller.submit(text))
    proxy.last_submission_accepted = accepted
    return accepted


def start_new_story(factory: Callable[[], SessionController] = build_controller) -> SessionController:
    controller = ensure_state(factory)
    controller.new_story()
    _proxy().last_submission_accepted = None
    return controller


__all__ = [
    "build_controller",
    "ensure_state",
    "start_new_story",
    "submit_text",
    "StorySessionProxy",
]
