from __future__ import annotations

import base64
import logging
from io import BytesIO

import httpx
import pytest
from PIL import Image

from scootpie.core.config import Settings
from scootpie.schemas.chat import OutfitItem
from scootpie.services import tryon
from scootpie.services.tryon import (
    GeminiTryOnGenerator,
    NoopTryOnGenerator,
    build_try_on_generator,
    build_tryon_prompt,
    load_image_bytes,
    to_jpeg,
)


def _png_bytes(size=(64, 48), color=(200, 10, 10)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color=color).save(buf, "PNG")
    return buf.getvalue()


def _data_url(raw: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64," + base64.b64encode(raw).decode("ascii")


def test_to_jpeg_downscales_large_images():
    out = to_jpeg(_png_bytes(size=(2048, 1024)))
    image = Image.open(BytesIO(out))
    assert image.format == "JPEG"
    assert image.size == (1024, 512)


def test_load_image_bytes_data_url_and_unsupported():
    raw = _png_bytes()
    assert load_image_bytes(_data_url(raw), timeout_sec=1) == raw
    with pytest.raises(ValueError):
        load_image_bytes("ftp://nope/img.jpg", timeout_sec=1)


def test_build_tryon_prompt_lists_items_in_order():
    prompt = build_tryon_prompt(
        [
            OutfitItem(name="Red Jacket", brand="Zara", category="jacket"),
            OutfitItem(name="Black Jeans", category="jeans"),
        ]
    )
    assert "1. Red Jacket by Zara (outerwear)" in prompt
    assert "2. Black Jeans (bottom)" in prompt


def test_build_try_on_generator_without_key():
    generator = build_try_on_generator(Settings(gemini_api_key=""))
    assert isinstance(generator, NoopTryOnGenerator)
    result = generator.generate("https://img.example/me.jpg", [])
    assert result.success is False


def test_missing_key_warning_is_logged_once(monkeypatch, caplog):
    monkeypatch.setattr(tryon, "_warned_missing_key", False)
    caplog.set_level(logging.WARNING)
    build_try_on_generator(Settings(gemini_api_key=""))
    build_try_on_generator(Settings(gemini_api_key=""))
    assert [r.getMessage() for r in caplog.records].count("gemini_key_missing_skip_tryon") == 1


def test_gemini_try_on_returns_inline_image_without_storage(monkeypatch):
    sent: dict = {}
    composite = _png_bytes(color=(0, 0, 255))

    def _fake_generate(base_url, model, api_key, body, timeout_sec):
        sent.update(model=model, body=body, timeout=timeout_sec)
        return {
            "candidates": [
                {"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": base64.b64encode(composite).decode()}}]}}
            ]
        }

    monkeypatch.setattr(tryon, "gemini_generate", _fake_generate)
    cfg = Settings(gemini_api_key="k", supabase_url=None, supabase_service_role_key=None, tryon_timeout_sec=42)
    generator = GeminiTryOnGenerator(cfg)

    item = OutfitItem(name="Red Jacket", category="jacket", image_url=_data_url(_png_bytes()))
    result = generator.generate(_data_url(_png_bytes(color=(1, 2, 3))), [item])

    assert result.success is True
    assert result.image_url.startswith("data:image/jpeg;base64,")
    assert sent["model"] == cfg.gemini_image_model
    assert sent["timeout"] == 42
    parts = sent["body"]["contents"][0]["parts"]
    assert "Red Jacket" in parts[0]["text"]
    assert len(parts) == 3
    assert sent["body"]["generationConfig"]["responseModalities"] == ["IMAGE", "TEXT"]


def test_gemini_try_on_skips_unloadable_garments(monkeypatch):
    monkeypatch.setattr(tryon, "gemini_generate", lambda **kw: pytest.fail("should not call model"))
    generator = GeminiTryOnGenerator(Settings(gemini_api_key="k"))

    item = OutfitItem(name="Ghost Tee", category="top", image_url="not-a-url")
    result = generator.generate(_data_url(_png_bytes()), [item])
    assert result.success is False
    assert "No garment images" in result.error


def test_gemini_try_on_failure_is_reported_not_raised(monkeypatch):
    def _boom(**kwargs):
        raise httpx.ReadTimeout("too slow")

    monkeypatch.setattr(tryon, "gemini_generate", _boom)
    generator = GeminiTryOnGenerator(Settings(gemini_api_key="k"))
    item = OutfitItem(name="Red Jacket", category="jacket", image_url=_data_url(_png_bytes()))

    result = generator.generate(_data_url(_png_bytes()), [item])
    assert result.success is False
    assert "ReadTimeout" in result.error


def test_gemini_try_on_without_image_in_reply(monkeypatch):
    monkeypatch.setattr(
        tryon,
        "gemini_generate",
        lambda **kw: {"candidates": [{"content": {"parts": [{"text": "sorry"}]}}], "promptFeedback": {"blockReason": "SAFETY"}},
    )
    generator = GeminiTryOnGenerator(Settings(gemini_api_key="k"))
    item = OutfitItem(name="Red Jacket", category="jacket", image_url=_data_url(_png_bytes()))

    result = generator.generate(_data_url(_png_bytes()), [item])
    assert result.success is False
    assert "SAFETY" in result.error
