"""Gemini text generation used for widget summaries."""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

import google.generativeai as genai

from personal_metrics.config import GeminiConfig
from personal_metrics.integrations.contracts import SummaryError
from personal_metrics.logging import get_logger

logger = get_logger(__name__)

_FENCED_JSON = re.compile(r"```json\s*(\{[\s\S]*?\})\s*```")


def extract_json(text: Any) -> dict[str, Any] | None:
    """Parse the JSON object in a model response.

    Accepts a fenced ```` ```json ```` block or a bare JSON document; returns
    ``None`` when neither yields an object.
    """

    if not isinstance(text, str) or not text.strip():
        return None

    match = _FENCED_JSON.search(text)
    candidate = match.group(1) if match else text
    try:
        parsed = json.loads(candidate)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


class GeminiSummaryClient:
    """Generate summaries with ``google-generativeai``.

    The SDK call is blocking and runs in a worker thread.
    """

    def __init__(self, *, api_key: str | None, model: str) -> None:
        self._api_key = api_key
        self._model_name = model

    @classmethod
    def from_config(cls, config: GeminiConfig) -> "GeminiSummaryClient":
        return cls(api_key=config.api_key, model=config.model)

    def _generate(self, prompt: str) -> str:
        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model_name)
        response = model.generate_content(prompt)
        return response.text

    async def summarize(self, prompt: str) -> str:
        if not self._api_key:
            raise SummaryError("GEMINI_API_KEY environment variable is required")
        try:
            text = await asyncio.to_thread(self._generate, prompt)
        except Exception as exc:
            raise SummaryError(f"Failed to generate AI summary: {exc}") from exc

        parsed = extract_json(text)
        if parsed is None:
            raise SummaryError("Gemini response was not valid JSON (no markdown block or raw JSON)")
        summary = parsed.get("response")
        if not isinstance(summary, str) or not summary.strip():
            raise SummaryError("Gemini response did not contain a summary")
        return summary.strip()


__all__ = ["GeminiSummaryClient", "extract_json"]
