"""Gemini text generation used for book and store copywriting."""

import logging
from typing import Protocol

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..errors import ContentBlockedError, UpstreamError

logger = logging.getLogger("livraria.ai")

BLOCKED_FINISH_REASONS = {"SAFETY", "RECITATION", "PROHIBITED_CONTENT", "BLOCKLIST"}

SAFETY_SETTINGS = [
    types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE)
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
    )
]


class TextGenerator(Protocol):
    def generate(self, prompt: str, temperature: float, max_output_tokens: int) -> str:
        ...


class GeminiTextGenerator:
    """Thin wrapper over `google-genai` returning the reply text.

    Raises `ContentBlockedError` when the candidate was stopped by a
    safety filter and `UpstreamError` for API failures or empty replies.
    """

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash"):
        self.model = model
        self._client = genai.Client(api_key=api_key)

    def generate(self, prompt: str, temperature: float, max_output_tokens: int) -> str:
        truncated = (prompt[:120] + "...") if len(prompt) > 120 else prompt
        logger.info("gemini_call model=%s prompt=%r", self.model, truncated)
        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=temperature,
                    top_p=0.95,
                    max_output_tokens=max_output_tokens,
                    safety_settings=SAFETY_SETTINGS,
                ),
            )
        except genai_errors.APIError as exc:
            logger.error("gemini_failed model=%s error=%s", self.model, exc)
            raise UpstreamError("text generation service failed") from exc

        candidates = response.candidates or []
        if candidates:
            reason = candidates[0].finish_reason
            reason_name = getattr(reason, "name", str(reason or ""))
            if reason_name in BLOCKED_FINISH_REASONS:
                logger.warning("gemini_blocked model=%s reason=%s", self.model, reason_name)
                raise ContentBlockedError()
        text = (response.text or "").strip()
        if not text:
            raise UpstreamError("text generation returned no content")
        return text
