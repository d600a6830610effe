"""Telemetry helpers around the activity log module."""
from __future__ import annotations

from typing import Any, Sequence

from activity_log import log_event


def emit_story_event(
    *,
    action: str,
    result: str,
    session_id: str | None,
    params: Sequence[Any] | None = None,
) -> Any:
    """Record a story lifecycle event (``type="story"``)."""

    return log_event(
        type="story",
        action=action,
        result=result,
        session_id=session_id,
        params=params,
    )


__all__ = ["emit_story_event"]
