from __future__ import annotations

import base64
import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from io import BytesIO

import httpx
from PIL import Image

from scootpie.core.config import Settings
from scootpie.schemas.chat import OutfitItem
from scootpie.services.categories import normalize_category
from scootpie.services.gemini import candidate_parts, gemini_generate
from scootpie.services.supabase_storage import upload_tryon_image

logger = logging.getLogger(__name__)

MAX_IMAGE_SIDE = 1024


@dataclass(slots=True)
class TryOnResult:
    success: bool
    image_url: str | None = None
    error: str | None = None


class TryOnGenerator:
    def generate(self, base_image: str, items: Sequence[OutfitItem]) -> TryOnResult:
        raise NotImplementedError


class NoopTryOnGenerator(TryOnGenerator):
    def generate(self, base_image: str, items: Sequence[OutfitItem]) -> TryOnResult:
        return TryOnResult(success=False, error="Image generation is not configured")


class GeminiTryOnGenerator(TryOnGenerator):
    def __init__(self, cfg: Settings) -> None:
        self.cfg = cfg

    def generate(self, base_image: str, items: Sequence[OutfitItem]) -> TryOnResult:
        try:
            return self._generate(base_image, items)
        except Exception as exc:
            logger.exception("tryon_generation_failed")
            return TryOnResult(success=False, error=f"{type(exc).__name__}: {exc}")

    def _generate(self, base_image: str, items: Sequence[OutfitItem]) -> TryOnResult:
        timeout = self.cfg.image_fetch_timeout_sec
        base_jpeg = to_jpeg(load_image_bytes(base_image, timeout))

        garments: list[tuple[OutfitItem, bytes]] = []
        for item in items:
            try:
                garments.append((item, to_jpeg(load_image_bytes(item.image_url, timeout))))
            except Exception as exc:
                logger.warning("tryon_item_image_unavailable name=%s error=%s", item.name, exc)
        if not garments:
            return TryOnResult(success=False, error="No garment images could be loaded")

        parts: list[dict] = [{"text": build_tryon_prompt([g for g, _ in garments])}, _inline_jpeg(base_jpeg)]
        parts.extend(_inline_jpeg(data) for _, data in garments)
        body = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"responseModalities": ["IMAGE", "TEXT"], "temperature": 0.4},
        }
        payload = gemini_generate(
            base_url=self.cfg.gemini_base_url,
            model=self.cfg.gemini_image_model,
            api_key=self.cfg.gemini_api_key,
            body=body,
            timeout_sec=self.cfg.tryon_timeout_sec,
        )

        image_bytes = _first_inline_image(payload)
        if image_bytes is None:
            feedback = payload.get("promptFeedback") or {}
            reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            return TryOnResult(success=False, error=f"Model returned no image ({reason or 'unknown'})")

        composite = to_jpeg(image_bytes)
        logger.info("tryon_generated items=%d bytes=%d", len(garments), len(composite))
        return TryOnResult(success=True, image_url=self._publish(composite))

    def _publish(self, composite: bytes) -> str:
        try:
            uploaded = upload_tryon_image(self.cfg, f"{uuid.uuid4()}.jpg", composite)
            if uploaded and uploaded.public_url:
                return uploaded.public_url
        except Exception as exc:
            logger.warning("tryon_upload_failed_inline_fallback: %s", exc)
        return "data:image/jpeg;base64," + base64.b64encode(composite).decode("ascii")


_warned_missing_key = False


def build_try_on_generator(cfg: Settings) -> TryOnGenerator:
    global _warned_missing_key
    if not cfg.gemini_api_key:
        if not _warned_missing_key:
            logger.warning("gemini_key_missing_skip_tryon")
            _warned_missing_key = True
        return NoopTryOnGenerator()
    return GeminiTryOnGenerator(cfg)


def build_tryon_prompt(items: Sequence[OutfitItem]) -> str:
    lines = [
        "You are a virtual try-on renderer.",
        "The first image is the person. Each following image is one garment, in this order:",
    ]
    for idx, item in enumerate(items, start=1):
        label = item.name
        if item.brand:
            label += f" by {item.brand}"
        lines.append(f"{idx}. {label} ({normalize_category(item.category)})")
    lines.extend(
        [
            "Dress the person in every listed garment, replacing whatever they wear in the same body region.",
            "Keep the face, hair, skin tone, body shape, pose, lighting and background unchanged.",
            "Return one photorealistic full-body image.",
        ]
    )
    return "\n".join(lines)


def load_image_bytes(ref: str, timeout_sec: float) -> bytes:
    if ref.startswith("data:"):
        _, _, data = ref.partition(",")
        return base64.b64decode(data)
    if ref.startswith(("http://", "https://")):
        resp = httpx.get(ref, timeout=timeout_sec, follow_redirects=True)
        resp.raise_for_status()
        return resp.content
    raise ValueError(f"Unsupported image reference: {ref[:40]}")


def to_jpeg(raw: bytes, quality: int = 90) -> bytes:
    image = Image.open(BytesIO(raw)).convert("RGB")
    max_side = max(image.size)
    if max_side > MAX_IMAGE_SIDE:
        scale = MAX_IMAGE_SIDE / max_side
        image = image.resize((int(image.size[0] * scale), int(image.size[1] * scale)))
    buf = BytesIO()
    image.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def _inline_jpeg(data: bytes) -> dict:
    return {"inlineData": {"mimeType": "image/jpeg", "data": base64.b64encode(data).decode("ascii")}}


def _first_inline_image(payload: dict) -> bytes | None:
    for part in candidate_parts(payload):
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            return base64.b64decode(inline["data"])
    return None
