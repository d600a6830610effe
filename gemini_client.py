"""Writer and illustrator clients built on the Gemini transport helpers."""
from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable

from PIL import Image, UnidentifiedImageError

from app_constants import EMPTY_CHAPTER_FALLBACK
from prompts.story import (
    DEFAULT_ILLUSTRATION_STYLE,
    SYSTEM_INSTRUCTION,
    build_illustration_prompt,
)
from services import gemini_api
from services.gemini_api import GenerationError, ImagePayload

_LOGGER = logging.getLogger(__name__)


def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


WRITER_TEMPERATURE = _float_env("STORY_WRITER_TEMPERATURE", 0.8)
ILLUSTRATION_STYLE = (os.getenv("STORY_ILLUSTRATION_STYLE") or "").strip() or DEFAULT_ILLUSTRATION_STYLE


@dataclass
class WriterSession:
    """Handle to one provider-side chat. At most one request may be in flight."""

    chat: Any
    model_name: str
    in_flight: bool = field(default=False, init=False)
    turns_sent: int = field(default=0, init=False)


class WriterClient:
    """Sends prompts to a Gemini chat that remembers the earlier chapters."""

    def __init__(
        self,
        *,
        system_instruction: str = SYSTEM_INSTRUCTION,
        temperature: float | None = None,
        model_name: str | None = None,
        chat_factory: Callable[..., Any] | None = None,
    ):
        self.system_instruction = system_instruction
        self.temperature = WRITER_TEMPERATURE if temperature is None else temperature
        self.model_name = model_name or gemini_api.TEXT_MODEL
        self._chat_factory = chat_factory or gemini_api.start_chat

    def create_session(self) -> WriterSession:
        chat = self._chat_factory(
            self.system_instruction,
            self.temperature,
            model_name=self.model_name,
        )
        return WriterSession(chat=chat, model_name=self.model_name)

    async def send(self, session: WriterSession, prompt: str) -> str:
        if session.in_flight:
            raise GenerationError("Writer session already has a request in flight.", model_name=session.model_name)

        session.in_flight = True
        try:
            text = await gemini_api.send_chat_message(session.chat, prompt, model_name=session.model_name)
        finally:
            session.in_flight = False

        session.turns_sent += 1
        if not text:
            _LOGGER.info("Writer returned an empty chapter; using fallback copy")
            return EMPTY_CHAPTER_FALLBACK
        return text


def _validate_image(payload: ImagePayload) -> ImagePayload:
    """Make sure the bytes decode as an image and normalize the mime type."""

    try:
        with Image.open(io.BytesIO(payload.data)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise GenerationError(f"Model returned unreadable image data: {exc}") from exc

    mime_type = Image.MIME.get(image_format or "", payload.mime_type) or "image/png"
    if mime_type != payload.mime_type:
        return ImagePayload(mime_type=mime_type, data=payload.data)
    return payload


class IllustratorClient:
    """Stateless image generation; every call carries its own story context."""

    def __init__(
        self,
        *,
        style_name: str | None = None,
        image_generator: Callable[[str], Any] | None = None,
    ):
        self.style_name = style_name or ILLUSTRATION_STYLE
        self._image_generator = image_generator or gemini_api.generate_image

    def build_prompt(self, scene_description: str, story_context: str) -> str:
        return build_illustration_prompt(
            scene_description=scene_description,
            story_context=story_context,
            style_name=self.style_name,
        )

    async def generate(self, scene_description: str, story_context: str) -> str:
        prompt = self.build_prompt(scene_description, story_context)
        payload = await self._image_generator(prompt)
        if not isinstance(payload, ImagePayload) or not payload.data:
            raise GenerationError("No image generated.")
        return _validate_image(payload).as_data_uri()


__all__ = [
    "GenerationError",
    "ILLUSTRATION_STYLE",
    "IllustratorClient",
    "WRITER_TEMPERATURE",
    "WriterClient",
    "WriterSession",
]
