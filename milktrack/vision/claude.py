"""Claude API vision backend for receipt extraction."""

from __future__ import annotations

import base64

from ..models import NormalizedImage
from . import VisionExtractor


class ClaudeVisionExtractor(VisionExtractor):
    """Read dairy receipts using Claude's vision capability."""

    def __init__(self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929") -> None:
        super().__init__(api_key=api_key, model=model)

    def _missing_key_message(self) -> str:
        return (
            "Anthropic API key is not set. "
            "Add it to the config file or the ANTHROPIC_API_KEY environment variable."
        )

    async def _complete(self, image: NormalizedImage, prompt: str) -> str:
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        content: list[dict] = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": image.content_type,
                    "data": base64.standard_b64encode(image.data).decode(),
                },
            },
            {"type": "text", "text": prompt},
        ]

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        response = await client.messages.create(
            model=self._model,
            max_tokens=1024,
            messages=[{"role": "user", "content": content}],
        )
        return response.content[0].text
