"""Short biography text for a member, generated with Gemini (google-genai)."""

from __future__ import annotations

import logging
from typing import Any, Optional

from google import genai

from .config import DEFAULT_GEMINI_MODEL

log = logging.getLogger(__name__)

MISSING_KEY = "API Key missing. Cannot generate bio."
EMPTY_RESPONSE = "No bio generated."
GENERATION_FAILED = "Error generating bio. Please try again."

_PROMPT = """
Write a short, dignified, and warm biography (max 100 words) for a family tree member.
Name: {name}
Birth Year: {birth_year}
Role in family: {relation}
Key traits/facts: {keywords}

Tone: Respectful, familial, celebrating heritage.
""".strip()


def build_prompt(name: str, birth_year: Any, relation: str, keywords: str) -> str:
    return _PROMPT.format(
        name=name,
        birth_year="" if birth_year is None else birth_year,
        relation=relation,
        keywords=keywords,
    )


class BioGenerator:
    """Wraps a genai client; any failure becomes one of the fixed messages above."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = DEFAULT_GEMINI_MODEL,
        client: Any = None,
    ) -> None:
        self.model = model
        self._client = client
        if self._client is None and api_key:
            self._client = genai.Client(api_key=api_key)
        if self._client is None:
            log.warning("Gemini API key is missing; bio generation disabled")

    def generate(self, name: str, birth_year: Any, relation: str, keywords: str = "") -> str:
        if self._client is None:
            return MISSING_KEY
        prompt = build_prompt(name, birth_year, relation, keywords)
        try:
            response = self._client.models.generate_content(model=self.model, contents=prompt)
        except Exception as e:  # noqa: BLE001 - surfaced to the user as a fixed message
            log.error("Error generating bio for %s: %s", name, e)
            return GENERATION_FAILED
        text = (getattr(response, "text", None) or "").strip()
        return text or EMPTY_RESPONSE
