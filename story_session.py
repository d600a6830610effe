"""Transcript and session state for a single story."""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from app_constants import GREETING_MESSAGE

GREETING_TURN_ID = "init"


class Origin(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class TurnKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"


class SessionPhase(str, Enum):
    SETUP = "SETUP"
    WRITING = "WRITING"
    AWAITING_ART = "AWAITING_ART"
    PAINTING = "PAINTING"

    @property
    def is_busy(self) -> bool:
        return self in BUSY_PHASES


BUSY_PHASES = frozenset({SessionPhase.WRITING, SessionPhase.PAINTING})


def new_turn_id() -> str:
    return uuid.uuid4().hex[:12]


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class TurnRecord:
    """One immutable transcript entry."""

    id: str
    origin: Origin
    kind: TurnKind
    payload: str
    created_at: float


def greeting_turn() -> TurnRecord:
    return TurnRecord(
        id=GREETING_TURN_ID,
        origin=Origin.ASSISTANT,
        kind=TurnKind.TEXT,
        payload=GREETING_MESSAGE,
        created_at=time.time(),
    )


class MessageLog:
    """Append-only transcript; only ``reset`` clears it."""

    def __init__(self, turns: list[TurnRecord] | None = None):
        self._turns: list[TurnRecord] = list(turns or [])

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[TurnRecord]:
        return iter(tuple(self._turns))

    def __getitem__(self, index: int) -> TurnRecord:
        return self._turns[index]

    def append(self, origin: Origin, kind: TurnKind, payload: str) -> TurnRecord:
        created_at = time.time()
        if self._turns:
            # Wall clock can step backwards; keep log order and timestamps aligned.
            created_at = max(created_at, self._turns[-1].created_at)
        record = TurnRecord(
            id=new_turn_id(),
            origin=origin,
            kind=kind,
            payload=payload,
            created_at=created_at,
        )
        self._turns.append(record)
        return record

    def last(self) -> TurnRecord | None:
        return self._turns[-1] if self._turns else None

    def snapshot(self) -> tuple[TurnRecord, ...]:
        return tuple(self._turns)

    def reset(self, greeting: TurnRecord | None = None) -> None:
        self._turns = [greeting or greeting_turn()]


@dataclass(slots=True)
class SessionState:
    """Mutable state of the active story, owned by ``SessionController``."""

    writer_session: Any
    phase: SessionPhase = SessionPhase.SETUP
    log: MessageLog = field(default_factory=lambda: MessageLog([greeting_turn()]))
    last_chapter_text: str = ""
    session_id: str = field(default_factory=new_session_id)
    consecutive_failures: int = 0


@dataclass(frozen=True, slots=True)
class SessionView:
    """Read-only projection handed to the UI."""

    session_id: str
    phase: SessionPhase
    turns: tuple[TurnRecord, ...]
    last_chapter_text: str

    @property
    def is_busy(self) -> bool:
        return self.phase.is_busy

    @classmethod
    def from_state(cls, state: SessionState) -> "SessionView":
        return cls(
            session_id=state.session_id,
            phase=state.phase,
            turns=state.log.snapshot(),
            last_chapter_text=state.last_chapter_text,
        )


__all__ = [
    "BUSY_PHASES",
    "GREETING_TURN_ID",
    "MessageLog",
    "Origin",
    "SessionPhase",
    "SessionState",
    "SessionView",
    "TurnKind",
    "TurnRecord",
    "greeting_turn",
    "new_session_id",
    "new_turn_id",
]
