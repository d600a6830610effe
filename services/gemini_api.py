"""Gemini SDK bootstrap and transport helpers."""
from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Iterable, Tuple

from dotenv import load_dotenv

# Quiet gRPC/absl logs before importing the SDK.
os.environ.setdefault("GRPC_VERBOSITY", "ERROR")
os.environ.setdefault("GRPC_TRACE", "")
try:  # pragma: no cover - optional dependency
    from absl import logging as absl_logging

    absl_logging.set_verbosity(absl_logging.ERROR)
except Exception:  # pragma: no cover - absl not installed
    pass

load_dotenv()

_LOGGER = logging.getLogger(__name__)

API_KEY = os.getenv("GEMINI_API_KEY", "")

_TEXT_MODEL_ENV = (os.getenv("GEMINI_TEXT_MODEL") or "").strip()
TEXT_MODEL = _TEXT_MODEL_ENV or "models/gemini-2.5-flash"

_IMAGE_MODEL_ENV = (os.getenv("GEMINI_IMAGE_MODEL") or "").strip()
IMAGE_MODEL = _IMAGE_MODEL_ENV or "gemini-2.5-flash-image"
IMAGE_MODEL_FALLBACKS: Tuple[str, ...] = tuple(
    name.strip() for name in (os.getenv("GEMINI_IMAGE_MODEL_FALLBACKS") or "").split(",") if name.strip()
)


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    try:
        return max(1, int(raw)) if raw else default
    except ValueError:
        return default


IMAGE_ATTEMPTS = _int_env("GEMINI_IMAGE_ATTEMPTS", 1)

_GENAI_MODULE: Any | None = None
_GENAI_CONFIGURED = False
genai: Any = SimpleNamespace(GenerativeModel=None)


class GenerationError(RuntimeError):
    """Raised when a Gemini call fails or returns nothing usable."""

    def __init__(self, message: str, *, model_name: str | None = None):
        self.model_name = model_name
        if model_name:
            message = f"[{model_name}] {message}"
        super().__init__(message)


def require_api_key() -> None:
    if not API_KEY:
        raise GenerationError("GEMINI_API_KEY is not set (check your .env file).")


def get_genai_module():
    """Lazily import and configure the ``google.generativeai`` SDK."""

    global _GENAI_MODULE, _GENAI_CONFIGURED, genai

    if _GENAI_MODULE is None:
        if getattr(genai, "GenerativeModel", None) is not None:
            _GENAI_MODULE = genai
        else:
            import google.generativeai as genai_mod  # type: ignore

            _GENAI_MODULE = genai_mod
            genai = genai_mod

    if not _GENAI_CONFIGURED:
        if API_KEY and hasattr(_GENAI_MODULE, "configure"):
            _GENAI_MODULE.configure(api_key=API_KEY)
        _GENAI_CONFIGURED = True

    return _GENAI_MODULE


@dataclass(frozen=True)
class ImagePayload:
    mime_type: str
    data: bytes

    def as_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    @classmethod
    def from_data_uri(cls, uri: str) -> "ImagePayload":
        """Parse a ``data:<mime>;base64,<data>`` URI back into raw bytes."""

        header, sep, body = (uri or "").partition(",")
        if not sep or not header.startswith("data:") or not header.endswith(";base64"):
            raise ValueError("Not a base64 data URI")
        mime_type = header[len("data:"):-len(";base64")] or "image/png"
        try:
            data = base64.b64decode(body, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Invalid base64 payload: {exc}") from exc
        return cls(mime_type=mime_type, data=data)


def _block_reason(resp) -> str | None:
    feedback = getattr(resp, "prompt_feedback", None)
    reason = getattr(feedback, "block_reason", None) if feedback else None
    if not reason:
        return None
    return str(getattr(reason, "name", reason))


def extract_text_from_response(resp) -> str:
    try:
        text = getattr(resp, "text", None)
    except ValueError:
        # The SDK raises when the candidate carries no text parts.
        text = None
    if text:
        return str(text)

    try:
        candidates = getattr(resp, "candidates", []) or []
        if candidates:
            content = getattr(candidates[0], "content", None)
            parts = getattr(content, "parts", None) if content else None
            if parts:
                return " ".join(
                    getattr(part, "text", "") for part in parts if getattr(part, "text", "")
                )
    except (AttributeError, IndexError, TypeError):
        return ""

    return ""


def start_chat(
    system_instruction: str,
    temperature: float,
    *,
    model_name: str | None = None,
):
    """Open a provider-side chat session that keeps the conversation memory."""

    genai_mod = get_genai_module()
    target_model = model_name or TEXT_MODEL
    model = genai_mod.GenerativeModel(
        target_model,
        system_instruction=system_instruction,
        generation_config={"temperature": temperature},
    )
    _LOGGER.debug("Started writer chat on %s (temperature=%s)", target_model, temperature)
    return model.start_chat(history=[])


async def send_chat_message(chat, prompt: str, *, model_name: str | None = None) -> str:
    """Send one prompt on ``chat`` and return the raw (possibly empty) text."""

    require_api_key()
    target_model = model_name or TEXT_MODEL
    try:
        response = await chat.send_message_async(prompt)
    except Exception as exc:
        raise GenerationError(f"{type(exc).__name__}: {exc}", model_name=target_model) from exc

    reason = _block_reason(response)
    if reason:
        raise GenerationError(f"Prompt blocked by the provider ({reason}).", model_name=target_model)

    return extract_text_from_response(response).strip()


def _coerce_bytes(value):
    if value is None:
        return None
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error:
            return None
    data_attr = getattr(value, "data", None)
    if data_attr is not None and data_attr is not value:
        return _coerce_bytes(data_attr)
    return None


def _iter_image_models() -> Iterable[str]:
    seen = set()
    for name in (IMAGE_MODEL, *IMAGE_MODEL_FALLBACKS):
        if not name or name in seen:
            continue
        seen.add(name)
        yield name


def _extract_image_from_response(resp) -> tuple[bytes | None, str | None]:
    for cand in getattr(resp, "candidates", None) or []:
        content = getattr(cand, "content", None)
        if not content:
            continue
        for part in getattr(content, "parts", None) or []:
            blob = getattr(part, "inline_data", None)
            if not blob:
                continue
            data = _coerce_bytes(getattr(blob, "data", None))
            if data:
                return data, getattr(blob, "mime_type", None) or "image/png"
    return None, None


async def generate_image(prompt: str, *, attempts: int | None = None) -> ImagePayload:
    """Generate one image for ``prompt``, trying fallback models in order."""

    require_api_key()
    genai_mod = get_genai_module()
    attempts = max(1, attempts or IMAGE_ATTEMPTS)
    last_error: GenerationError | None = None

    for attempt in range(1, attempts + 1):
        for model_name in _iter_image_models():
            try:
                model = genai_mod.GenerativeModel(model_name)
                response = await model.generate_content_async(prompt)
            except Exception as exc:
                detail = f"{type(exc).__name__}: {exc}"
                if "NotFound" in detail or "404" in detail:
                    detail += " (set GEMINI_IMAGE_MODEL to an image-capable model)"
                last_error = GenerationError(detail, model_name=model_name)
                _LOGGER.warning("Image attempt %d failed: %s", attempt, last_error)
                continue

            image_bytes, mime_type = _extract_image_from_response(response)
            if not image_bytes:
                feedback = _block_reason(response) or "no inline image data"
                last_error = GenerationError(
                    f"Model returned no image: {feedback}", model_name=model_name
                )
                _LOGGER.warning("Image attempt %d failed: %s", attempt, last_error)
                continue

            return ImagePayload(mime_type=mime_type or "image/png", data=image_bytes)

    raise last_error or GenerationError("No image model is configured.")


__all__ = [
    "API_KEY",
    "TEXT_MODEL",
    "IMAGE_MODEL",
    "IMAGE_MODEL_FALLBACKS",
    "IMAGE_ATTEMPTS",
    "GenerationError",
    "ImagePayload",
    "genai",
    "get_genai_module",
    "require_api_key",
    "start_chat",
    "send_chat_message",
    "generate_image",
    "extract_text_from_response",
]
