"""Service-account credential lookup for the Firestore activity log."""
from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

try:  # pragma: no cover - optional dependency
    from google.oauth2 import service_account  # type: ignore
except ImportError:  # pragma: no cover - google-auth not installed
    service_account = None  # type: ignore

_REQUIRED_FIELDS = {"type", "project_id", "private_key", "client_email"}
_JSON_ENV_KEYS = ("GOOGLE_CREDENTIALS_JSON", "GCP_SERVICE_ACCOUNT_INFO")
_DEFAULT_CREDENTIAL_FILE = Path("google-credential.json")


def _parse_service_account_json(blob: str | None) -> dict[str, Any] | None:
    if not blob or not blob.strip():
        return None
    try:
        payload = json.loads(blob)
    except ValueError:
        return None
    if not isinstance(payload, Mapping) or not _REQUIRED_FIELDS.issubset(payload.keys()):
        return None
    return dict(payload)


def _credential_file_candidates() -> list[Path]:
    candidates: list[Path] = []
    env_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if env_path:
        candidates.append(Path(env_path).expanduser())
    candidates.append(_DEFAULT_CREDENTIAL_FILE)
    return candidates


@lru_cache(maxsize=1)
def get_service_account_credentials():
    """Return service-account credentials from a key file or a JSON env var, else ``None``."""

    if service_account is None:
        return None

    for path in _credential_file_candidates():
        if not path.is_file():
            continue
        try:
            return service_account.Credentials.from_service_account_file(str(path))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load Google credentials from %s: %s", path, exc)

    for env_key in _JSON_ENV_KEYS:
        info = _parse_service_account_json(os.getenv(env_key))
        if info is None:
            continue
        try:
            return service_account.Credentials.from_service_account_info(info)
        except ValueError as exc:
            logger.warning("Failed to build Google credentials from %s: %s", env_key, exc)

    return None


__all__ = ["get_service_account_credentials"]
