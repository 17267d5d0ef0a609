from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

import httpx

from scootpie.core.config import Settings

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

QUERY_EXTRACTION_PROMPT = """You are a fashion shopping assistant. Extract structured search terms from the user's message.

If the message mentions MULTIPLE clothing items (e.g., "jacket and jeans"), return:
{"items": [{"brand":string, "color":string, "category":string, "style":string[]}, ...]}

If the message mentions ONE item, return:
{"brand":string, "color":string, "category":string, "style":string[]}

Fields:
- brand: retail brand if mentioned (H&M, Zara, UNIQLO, etc.)
- color: main color (lowercase)
- category: jacket, top, jeans, pants, dress, skirt, hoodie, sweater, shoes
- style: extra terms like puffer, cropped, oversized, slim

Return ONLY valid JSON. No prose."""


@dataclass(slots=True)
class ParsedItem:
    brand: str | None = None
    color: str | None = None
    category: str | None = None
    style: list[str] = field(default_factory=list)

    def query(self) -> str:
        terms = [self.brand, self.color, self.category, *self.style]
        return " ".join(t for t in terms if t).strip()


@dataclass(slots=True)
class ParsedSingleItem:
    item: ParsedItem


@dataclass(slots=True)
class ParsedMultiItem:
    items: list[ParsedItem]


@dataclass(slots=True)
class ParseFailure:
    reason: str


LlmParse = Union[ParsedSingleItem, ParsedMultiItem, ParseFailure]


class QueryParser(Protocol):
    def parse(self, message: str) -> LlmParse:
        ...


class NoopQueryParser:
    def parse(self, message: str) -> LlmParse:
        return ParseFailure("llm_parser_not_configured")


_warned_missing_key = False


class GeminiQueryParser:
    """Asks Gemini to turn a chat message into brand/color/category terms."""

    def __init__(self, api_key: str, model: str, base_url: str, timeout_sec: float = 20.0) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec

    @classmethod
    def from_settings(cls, cfg: Settings) -> "GeminiQueryParser | NoopQueryParser":
        global _warned_missing_key
        if not cfg.gemini_api_key:
            if not _warned_missing_key:
                logger.warning("gemini_key_missing_skip_llm_parse")
                _warned_missing_key = True
            return NoopQueryParser()
        return cls(
            api_key=cfg.gemini_api_key,
            model=cfg.gemini_text_model,
            base_url=cfg.gemini_base_url,
            timeout_sec=cfg.gemini_timeout_sec,
        )

    def parse(self, message: str) -> LlmParse:
        body = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": QUERY_EXTRACTION_PROMPT}, {"text": f"User: {message}"}],
                }
            ],
        }
        try:
            payload = gemini_generate(
                base_url=self.base_url,
                model=self.model,
                api_key=self.api_key,
                body=body,
                timeout_sec=self.timeout_sec,
            )
            result = parse_llm_payload(first_candidate_text(payload))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("gemini_parse_request_failed: %s", exc)
            return ParseFailure(f"request_failed: {exc}")
        except Exception as exc:
            logger.exception("gemini_parse_failed")
            return ParseFailure(f"parse_failed: {exc}")

        if isinstance(result, ParseFailure):
            logger.warning("gemini_parse_unusable: %s", result.reason)
        return result


def gemini_generate(base_url: str, model: str, api_key: str, body: dict[str, Any], timeout_sec: float) -> dict[str, Any]:
    response = httpx.post(
        f"{base_url.rstrip('/')}/models/{model}:generateContent",
        headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
        json=body,
        timeout=timeout_sec,
    )
    response.raise_for_status()
    payload = response.json()
    if not isinstance(payload, dict):
        raise ValueError("Invalid Gemini response payload")
    return payload


def candidate_parts(payload: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return []
    return [p for p in parts if isinstance(p, dict)]


def first_candidate_text(payload: dict[str, Any]) -> str:
    for part in candidate_parts(payload):
        text = part.get("text")
        if isinstance(text, str):
            return text
    return ""


def parse_llm_payload(text: str) -> LlmParse:
    """Validate a model reply into a single-item, multi-item or failure result."""
    raw = _FENCE_RE.sub("", (text or "").strip()).strip()
    if not raw:
        return ParseFailure("empty_response")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return ParseFailure(f"malformed_json: {exc.msg}")
    if not isinstance(data, dict):
        return ParseFailure("unexpected_shape")

    items = data.get("items")
    if isinstance(items, list):
        parsed = [_parsed_item(row) for row in items if isinstance(row, dict)]
        parsed = [p for p in parsed if p.query()]
        if not parsed:
            return ParseFailure("no_usable_items")
        return ParsedMultiItem(items=parsed)

    item = _parsed_item(data)
    if not item.query():
        return ParseFailure("no_usable_fields")
    return ParsedSingleItem(item=item)


def _parsed_item(row: dict[str, Any]) -> ParsedItem:
    style = row.get("style")
    if not isinstance(style, list):
        style = []
    return ParsedItem(
        brand=_clean_optional(row.get("brand")),
        color=_clean_optional(row.get("color")),
        category=_clean_optional(row.get("category")),
        style=[str(s).strip() for s in style if str(s).strip()],
    )


def _clean_optional(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
