# app.py
from __future__ import annotations

import streamlit as st

from activity_log import get_activity_logging_status, init_activity_log
from app_constants import APP_TITLE, BUSY_LABELS, INPUT_PLACEHOLDERS
from services.gemini_api import API_KEY, ImagePayload
from session_state import ensure_state, start_new_story, submit_text
from session_proxy import StorySessionProxy
from story_session import Origin, SessionView, TurnKind, TurnRecord

st.set_page_config(page_title=APP_TITLE, page_icon="📖", layout="centered")

init_activity_log()


def render_turn(turn: TurnRecord) -> None:
    avatar = "🧑" if turn.origin is Origin.USER else "📖"
    with st.chat_message(turn.origin.value, avatar=avatar):
        if turn.kind is not TurnKind.IMAGE:
            st.markdown(turn.payload)
            return
        try:
            image = ImagePayload.from_data_uri(turn.payload)
        except ValueError:
            st.warning("This illustration could not be displayed.")
            return
        st.image(image.data, caption="✨ Illustrated")


def render_status(placeholder, view: SessionView) -> None:
    label = BUSY_LABELS.get(view.phase.value)
    if label:
        placeholder.info(label, icon="✨")
    else:
        placeholder.empty()


controller = ensure_state()
session_proxy = StorySessionProxy(st.session_state)

header_cols = st.columns([5, 2])
with header_cols[0]:
    st.title(f"📖 {APP_TITLE}")
with header_cols[1]:
    if st.button("➕ New Story", width="stretch", help="Start a new story"):
        start_new_story()
        st.rerun()

if not API_KEY:
    st.warning("GEMINI_API_KEY is not set. Add it to your .env file to start writing.")

logging_active, logging_reason = get_activity_logging_status()
if not logging_active and logging_reason:
    st.caption(f"Activity logging is off: {logging_reason}")

view = controller.view()
for turn in view.turns:
    render_turn(turn)

status_placeholder = st.empty()
render_status(status_placeholder, view)

if session_proxy.last_submission_accepted is False:
    st.caption("Please wait for the current step to finish before sending another message.")

prompt = st.chat_input(
    INPUT_PLACEHOLDERS.get(view.phase.value, "Type here..."),
    disabled=view.is_busy,
)

if prompt:
    unsubscribe = controller.subscribe(lambda latest: render_status(status_placeholder, latest))
    try:
        submit_text(prompt)
    finally:
        unsubscribe()
    st.rerun()
