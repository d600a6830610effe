"""Story activity events written to Firestore."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Mapping, MutableMapping, Sequence

from google_credentials import get_service_account_credentials

try:  # pragma: no cover - optional dependency checked at runtime
    from google.cloud import firestore  # type: ignore
except ImportError:  # pragma: no cover - gracefully handle missing package
    firestore = None  # type: ignore

_LOGGER = logging.getLogger(__name__)

ACTIVITY_LOG_ENABLED = (os.getenv("ACTIVITY_LOG_ENABLED", "true").strip().lower() not in {"0", "false", "no"})
_ACTIVITY_COLLECTION_RAW = os.getenv("FIRESTORE_ACTIVITY_COLLECTION", "activity_logs").strip()
ACTIVITY_LOG_COLLECTION = _ACTIVITY_COLLECTION_RAW or "activity_logs"

GCP_PROJECT_ID = (os.getenv("GCP_PROJECT_ID") or "").strip() or None

_MAX_PARAMS = 3

_ACTIVITY_LOG_ACTIVE = False
_ACTIVITY_DISABLE_REASON: str | None = None


@dataclass(slots=True)
class ActivityLogEntry:
    """One recorded story event."""

    id: str
    type: str
    action: str
    result: str
    session_id: str | None
    timestamp: datetime
    params: tuple[str | None, ...]
    metadata: Mapping[str, Any] | None


def _resolve_project_id() -> str | None:
    if GCP_PROJECT_ID:
        return GCP_PROJECT_ID
    credentials = get_service_account_credentials()
    return (getattr(credentials, "project_id", "") if credentials else "") or None


@lru_cache(maxsize=1)
def _get_firestore_client():
    if firestore is None:
        raise RuntimeError("google-cloud-firestore must be installed for activity logging")

    project_id = _resolve_project_id()
    if not project_id:
        raise RuntimeError("Set GCP_PROJECT_ID (or provide service-account credentials) to enable activity logging.")

    client_kwargs: MutableMapping[str, Any] = {"project": project_id}
    credentials = get_service_account_credentials()
    if credentials is not None:
        client_kwargs["credentials"] = credentials
    return firestore.Client(**client_kwargs)  # type: ignore[arg-type]


def _get_activity_collection():
    return _get_firestore_client().collection(ACTIVITY_LOG_COLLECTION)


def _disable_logging(reason: str) -> None:
    global _ACTIVITY_LOG_ACTIVE, _ACTIVITY_DISABLE_REASON
    if _ACTIVITY_LOG_ACTIVE:
        _LOGGER.warning("Disabling activity logging: %s", reason)
    _ACTIVITY_LOG_ACTIVE = False
    _ACTIVITY_DISABLE_REASON = reason


def init_activity_log() -> None:
    """Open the Firestore collection, or disable logging with a reason."""

    global _ACTIVITY_LOG_ACTIVE, _ACTIVITY_DISABLE_REASON
    if not ACTIVITY_LOG_ENABLED:
        _disable_logging("ACTIVITY_LOG_ENABLED is false")
        return

    try:
        collection = _get_activity_collection()
        list(collection.limit(1).stream())  # pragma: no cover - warm up
    except Exception as exc:  # pragma: no cover - surfaced via get_activity_logging_status
        _disable_logging(str(exc))
        return

    _ACTIVITY_LOG_ACTIVE = True
    _ACTIVITY_DISABLE_REASON = None
    _LOGGER.debug("Activity logging enabled using Firestore collection '%s'", ACTIVITY_LOG_COLLECTION)


def is_activity_logging_enabled() -> bool:
    return _ACTIVITY_LOG_ACTIVE


def get_activity_logging_status() -> tuple[bool, str | None]:
    return _ACTIVITY_LOG_ACTIVE, _ACTIVITY_DISABLE_REASON


def _normalize_string(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def _normalize_result(result: str) -> str:
    normalized = (_normalize_string(result) or "").lower()
    return "fail" if normalized in {"fail", "failure", "error"} else "success"


def log_event(
    *,
    type: str,
    action: str,
    result: str,
    session_id: str | None,
    params: Sequence[Any] | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> ActivityLogEntry | None:
    """Write one event. Returns ``None`` when logging is off or the write fails."""

    if not _ACTIVITY_LOG_ACTIVE:
        return None

    padded = list(params or [])[:_MAX_PARAMS]
    padded += [None] * (_MAX_PARAMS - len(padded))
    normalized_params = tuple(_normalize_string(value) for value in padded)

    now = datetime.now(timezone.utc)
    payload: MutableMapping[str, Any] = {
        "type": _normalize_string(type) or "unknown",
        "action": _normalize_string(action) or "unknown",
        "result": _normalize_result(result),
        "session_id": _normalize_string(session_id),
        "timestamp": now,
        "timestamp_iso": now.isoformat(),
    }
    for index, value in enumerate(normalized_params, start=1):
        payload[f"param{index}"] = value
    if metadata:
        payload["metadata"] = dict(metadata)

    try:
        doc_ref = _get_activity_collection().document()
        doc_ref.set(payload)
    except Exception as exc:  # pragma: no cover - never break the story flow
        _disable_logging(str(exc))
        _LOGGER.warning("Failed to log activity event (%s: %s): %s", type, action, exc)
        return None

    return ActivityLogEntry(
        id=str(getattr(doc_ref, "id", "")),
        type=payload["type"],
        action=payload["action"],
        result=payload["result"],
        session_id=payload["session_id"],
        timestamp=now,
        params=normalized_params,
        metadata=dict(metadata) if metadata else None,
    )


__all__ = [
    "ActivityLogEntry",
    "ACTIVITY_LOG_COLLECTION",
    "ACTIVITY_LOG_ENABLED",
    "GCP_PROJECT_ID",
    "get_activity_logging_status",
    "init_activity_log",
    "is_activity_logging_enabled",
    "log_event",
]
