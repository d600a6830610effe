import asyncio
import io
from types import SimpleNamespace

import pytest
from PIL import Image

import gemini_client
from app_constants import EMPTY_CHAPTER_FALLBACK
from services import gemini_api as gemini_api_service
from services.gemini_api import GenerationError, ImagePayload


class DummyResponse(SimpleNamespace):
    pass


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), color=(200, 120, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


class DummyChat:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.prompts = []

    async def send_message_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(gemini_api_service, "API_KEY", "test-key")


def _use_fake_genai(monkeypatch, model_cls):
    monkeypatch.setattr(gemini_api_service, "_GENAI_MODULE", SimpleNamespace(GenerativeModel=model_cls))
    monkeypatch.setattr(gemini_api_service, "_GENAI_CONFIGURED", True)


def _writer_for(chat):
    return gemini_client.WriterClient(chat_factory=lambda *_args, **_kwargs: chat)


def test_extract_text_from_response_prefers_text():
    resp = DummyResponse(text="hello world")
    assert gemini_api_service.extract_text_from_response(resp) == "hello world"


def test_extract_text_from_response_candidates_fallback():
    class BlockedText:
        @property
        def text(self):
            raise ValueError("no text parts")

        candidates = [
            SimpleNamespace(content=SimpleNamespace(parts=[SimpleNamespace(text="first"), SimpleNamespace(text="second")]))
        ]

    assert gemini_api_service.extract_text_from_response(BlockedText()) == "first second"


def test_writer_session_uses_system_instruction_and_temperature():
    captured = {}

    def factory(system_instruction, temperature, *, model_name):
        captured.update(system_instruction=system_instruction, temperature=temperature, model_name=model_name)
        return DummyChat()

    writer = gemini_client.WriterClient(temperature=0.8, model_name="writer-model", chat_factory=factory)
    session = writer.create_session()

    assert "StoryBrush" in captured["system_instruction"]
    assert captured["temperature"] == 0.8
    assert captured["model_name"] == "writer-model"
    assert session.model_name == "writer-model"


def test_writer_send_returns_chapter_text(api_key):
    chat = DummyChat(response=DummyResponse(text="  **Chapter 1** Rain on the docks.  ", prompt_feedback=None))
    writer = _writer_for(chat)
    session = writer.create_session()

    text = asyncio.run(writer.send(session, "The story is about: noir. Let's begin!"))

    assert text == "**Chapter 1** Rain on the docks."
    assert chat.prompts == ["The story is about: noir. Let's begin!"]
    assert session.in_flight is False
    assert session.turns_sent == 1


def test_writer_send_empty_text_uses_fallback(api_key):
    chat = DummyChat(response=DummyResponse(text="", candidates=[], prompt_feedback=None))
    writer = _writer_for(chat)

    text = asyncio.run(writer.send(writer.create_session(), "next"))

    assert text == EMPTY_CHAPTER_FALLBACK


def test_writer_send_blocked_prompt_raises(api_key):
    feedback = SimpleNamespace(block_reason=SimpleNamespace(name="SAFETY"))
    chat = DummyChat(response=DummyResponse(text="", candidates=[], prompt_feedback=feedback))
    writer = _writer_for(chat)

    with pytest.raises(GenerationError, match="SAFETY"):
        asyncio.run(writer.send(writer.create_session(), "next"))


def test_writer_send_wraps_transport_errors(api_key):
    writer = _writer_for(DummyChat(error=ConnectionError("reset by peer")))
    session = writer.create_session()

    with pytest.raises(GenerationError, match="ConnectionError"):
        asyncio.run(writer.send(session, "next"))
    assert session.in_flight is False


def test_writer_send_requires_api_key(monkeypatch):
    monkeypatch.setattr(gemini_api_service, "API_KEY", "")
    writer = _writer_for(DummyChat(response=DummyResponse(text="unused")))

    with pytest.raises(GenerationError, match="GEMINI_API_KEY"):
        asyncio.run(writer.send(writer.create_session(), "next"))


def test_writer_rejects_second_in_flight_call(api_key):
    writer = _writer_for(DummyChat(response=DummyResponse(text="unused")))
    session = writer.create_session()
    session.in_flight = True

    with pytest.raises(GenerationError, match="in flight"):
        asyncio.run(writer.send(session, "next"))


def test_illustrator_returns_data_uri_with_context():
    prompts = []

    async def fake_generate(prompt):
        prompts.append(prompt)
        return ImagePayload(mime_type="application/octet-stream", data=_png_bytes())

    illustrator = gemini_client.IllustratorClient(style_name="storybook", image_generator=fake_generate)

    image_ref = asyncio.run(illustrator.generate("a lighthouse in fog", "**Chapter 1** The keeper vanished."))

    assert image_ref.startswith("data:image/png;base64,")
    assert ImagePayload.from_data_uri(image_ref).data == _png_bytes()
    assert "Scene Description: a lighthouse in fog" in prompts[0]
    assert "The keeper vanished." in prompts[0]
    assert "watercolor" in prompts[0]


def test_illustrator_rejects_unreadable_image():
    async def fake_generate(_prompt):
        return ImagePayload(mime_type="image/png", data=b"not an image")

    illustrator = gemini_client.IllustratorClient(image_generator=fake_generate)

    with pytest.raises(GenerationError, match="unreadable"):
        asyncio.run(illustrator.generate("scene", "context"))


def test_generate_image_falls_back_to_next_model(api_key, monkeypatch):
    tried = []
    png = _png_bytes()

    class DummyModel:
        def __init__(self, model_name):
            self.model_name = model_name

        async def generate_content_async(self, prompt):
            tried.append(self.model_name)
            if self.model_name == "primary-image":
                raise RuntimeError("404 NotFound")
            blob = SimpleNamespace(mime_type="image/png", data=png)
            part = SimpleNamespace(inline_data=blob)
            return DummyResponse(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])

    _use_fake_genai(monkeypatch, DummyModel)
    monkeypatch.setattr(gemini_api_service, "IMAGE_MODEL", "primary-image")
    monkeypatch.setattr(gemini_api_service, "IMAGE_MODEL_FALLBACKS", ("backup-image",))

    payload = asyncio.run(gemini_api_service.generate_image("prompt"))

    assert tried == ["primary-image", "backup-image"]
    assert payload == ImagePayload(mime_type="image/png", data=png)


def test_generate_image_without_inline_data_raises(api_key, monkeypatch):
    class DummyModel:
        def __init__(self, _model_name):
            pass

        async def generate_content_async(self, _prompt):
            part = SimpleNamespace(text="I can only describe it.", inline_data=None)
            return DummyResponse(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))], prompt_feedback=None)

    _use_fake_genai(monkeypatch, DummyModel)
    monkeypatch.setattr(gemini_api_service, "IMAGE_MODEL", "image-model")
    monkeypatch.setattr(gemini_api_service, "IMAGE_MODEL_FALLBACKS", ())

    with pytest.raises(GenerationError, match="no inline image data"):
        asyncio.run(gemini_api_service.generate_image("prompt", attempts=2))


def test_start_chat_configures_model(monkeypatch):
    captured = {}

    class DummyModel:
        def __init__(self, model_name, **kwargs):
            captured["model_name"] = model_name
            captured.update(kwargs)

        def start_chat(self, history):
            captured["history"] = history
            return DummyChat()

    _use_fake_genai(monkeypatch, DummyModel)

    chat = gemini_api_service.start_chat("persona", 0.8, model_name="writer-model")

    assert isinstance(chat, DummyChat)
    assert captured["system_instruction"] == "persona"
    assert captured["generation_config"] == {"temperature": 0.8}
    assert captured["history"] == []


def test_from_data_uri_rejects_plain_urls():
    with pytest.raises(ValueError):
        ImagePayload.from_data_uri("https://example.com/image.png")
