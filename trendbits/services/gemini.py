from __future__ import annotations

import logging

from flask import current_app
from google import genai
from google.genai import types

from trendbits.errors import UpstreamAIError

logger = logging.getLogger(__name__)

EXTENSION_KEY = "trendbits.ai"


class GeminiClient:
    """Thin wrapper over ``google-genai`` returning the response text.

    The SDK client is created on first use so a missing key only fails the
    requests that actually need the model.
    """

    def __init__(self, api_key: str | None, *, model: str) -> None:
        self._api_key = api_key
        self.model = model
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise UpstreamAIError(detail="GEMINI_API_KEY is not configured.")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def generate(
        self,
        contents: str,
        *,
        system_instruction: str | None = None,
        thinking_budget: int = 0,
    ) -> str:
        client = self._get_client()
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            thinking_config=types.ThinkingConfig(thinking_budget=thinking_budget),
        )
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )
        except Exception as exc:
            logger.exception("Gemini request failed (model=%s).", self.model)
            raise UpstreamAIError(detail=f"Gemini request failed: {exc}") from exc
        text = response.text
        if not isinstance(text, str) or not text.strip():
            raise UpstreamAIError(detail="Gemini returned an empty response.")
        return text


def ai_client():
    return current_app.extensions[EXTENSION_KEY]
