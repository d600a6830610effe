from __future__ import annotations

import dataclasses

import pytest

import story_session
from story_session import (
    GREETING_TURN_ID,
    MessageLog,
    Origin,
    SessionPhase,
    SessionState,
    SessionView,
    TurnKind,
    greeting_turn,
)


def test_append_assigns_unique_ids_in_order():
    log = MessageLog([greeting_turn()])
    first = log.append(Origin.USER, TurnKind.TEXT, "a haunted lighthouse")
    second = log.append(Origin.ASSISTANT, TurnKind.TEXT, "**Chapter 1**")

    assert [turn.id for turn in log] == [GREETING_TURN_ID, first.id, second.id]
    assert len({turn.id for turn in log}) == 3
    assert log.last() is second


def test_turn_records_are_immutable():
    record = greeting_turn()
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.payload = "changed"  # type: ignore[misc]


def test_created_at_never_goes_backwards(monkeypatch):
    clock = iter([100.0, 99.0])
    log = MessageLog()
    monkeypatch.setattr(story_session.time, "time", lambda: next(clock))

    first = log.append(Origin.USER, TurnKind.TEXT, "one")
    second = log.append(Origin.USER, TurnKind.TEXT, "two")

    assert second.created_at >= first.created_at


def test_reset_leaves_only_greeting():
    log = MessageLog([greeting_turn()])
    log.append(Origin.USER, TurnKind.TEXT, "topic")

    log.reset()

    assert len(log) == 1
    assert log[0].id == GREETING_TURN_ID


def test_snapshot_is_detached_from_later_appends():
    log = MessageLog([greeting_turn()])
    snapshot = log.snapshot()
    log.append(Origin.USER, TurnKind.TEXT, "topic")

    assert len(snapshot) == 1
    assert len(log) == 2


def test_session_state_defaults_and_view():
    state = SessionState(writer_session=object())

    assert state.phase is SessionPhase.SETUP
    assert len(state.log) == 1
    assert state.last_chapter_text == ""

    state.phase = SessionPhase.PAINTING
    view = SessionView.from_state(state)
    assert view.is_busy is True
    assert view.session_id == state.session_id


def test_busy_phases():
    assert {phase for phase in SessionPhase if phase.is_busy} == {
        SessionPhase.WRITING,
        SessionPhase.PAINTING,
    }
