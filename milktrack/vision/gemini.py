"""Gemini API vision backend for receipt extraction."""

from __future__ import annotations

from ..models import NormalizedImage
from . import VisionExtractor


class GeminiVisionExtractor(VisionExtractor):
    """Read dairy receipts using Google Gemini's vision capability."""

    def __init__(self, api_key: str = "", model: str = "gemini-2.5-flash") -> None:
        super().__init__(api_key=api_key, model=model)

    def _missing_key_message(self) -> str:
        return (
            "Gemini API key is not set. "
            "Add it to the config file or the GEMINI_API_KEY environment variable."
        )

    async def _complete(self, image: NormalizedImage, prompt: str) -> str:
        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model)

        parts: list = [
            prompt,
            {"mime_type": image.content_type, "data": image.data},
        ]
        response = await model.generate_content_async(parts)
        return response.text
