"""Vision backend base class, extraction result type, and factory."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from ..errors import ConfigurationError, ExtractionMalformed, ExtractionUnavailable
from ..models import EntrySource, NormalizedImage, format_receipt_date

if TYPE_CHECKING:
    from ..config import MilkTrackConfig

logger = logging.getLogger(__name__)

# Greedy on purpose: first "{" through last "}" of the response
_JSON_SPAN = re.compile(r"\{[\s\S]*\}")

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")

# Model JSON key → ExtractionResult attribute
WIRE_KEYS: dict[str, str] = {
    "date": "date",
    "quantity": "quantity",
    "fat": "fat",
    "clr": "clr",
    "fatKg": "fat_kg",
    "snfKg": "snf_kg",
    "baseRate": "base_rate",
    "rate": "rate",
    "amount": "amount",
}


def _as_text(value) -> str | None:
    """Wire values are text even when numeric; unset stays None, never 0."""
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    if isinstance(value, Decimal):
        # 1e3 reads as "1000", not "1E+3"
        return format(value, "f")
    text = str(value).strip()
    return text or None


def iso_to_receipt_date(value: str | None) -> str | None:
    """Convert ``YYYY-MM-DD`` (as date pickers send it) to ``DD/MM/YYYY``."""
    if value is None:
        return None
    m = _ISO_DATE.match(value.strip())
    if m is None:
        return value
    year, month, day = m.groups()
    return f"{day}/{month}/{year}"


@dataclass
class ExtractionResult:
    """Sparse set of receipt values from one of the two entry paths.

    ``snf`` is the SNF percentage typed in on the manual path; it is only
    used to derive CLR and is not stored.
    """

    raw_text: str
    source: EntrySource = EntrySource.CAMERA
    date: str | None = None
    quantity: str | None = None
    fat: str | None = None
    clr: str | None = None
    fat_kg: str | None = None
    snf_kg: str | None = None
    snf: str | None = None
    base_rate: str | None = None
    rate: str | None = None
    amount: str | None = None

    @classmethod
    def from_response(
        cls, text: str, captured_at: datetime | None = None
    ) -> ExtractionResult:
        """Build a result from a model response.

        Raises:
            ExtractionMalformed: If no JSON object can be isolated and parsed.
                No partially populated result is ever returned.
        """
        data = parse_response(text)
        values: dict[str, str | None] = {}
        for key, attr in WIRE_KEYS.items():
            raw = data.get(key, data.get(attr))
            values[attr] = _as_text(raw)

        if values["date"] is None and captured_at is not None:
            values["date"] = format_receipt_date(captured_at)

        return cls(raw_text=text, source=EntrySource.CAMERA, **values)

    @classmethod
    def manual(
        cls,
        *,
        date: str | None = None,
        quantity: str | None = None,
        fat: str | None = None,
        snf: str | None = None,
        rate: str | None = None,
        amount: str | None = None,
        clr: str | None = None,
        fat_kg: str | None = None,
        snf_kg: str | None = None,
        base_rate: str | None = None,
    ) -> ExtractionResult:
        """Build a result from values typed in by hand."""
        return cls(
            raw_text="Manual entry",
            source=EntrySource.MANUAL,
            date=iso_to_receipt_date(_as_text(date)),
            quantity=_as_text(quantity),
            fat=_as_text(fat),
            snf=_as_text(snf),
            rate=_as_text(rate),
            amount=_as_text(amount),
            clr=_as_text(clr),
            fat_kg=_as_text(fat_kg),
            snf_kg=_as_text(snf_kg),
            base_rate=_as_text(base_rate),
        )

    def values(self) -> dict[str, str | None]:
        skip = {"raw_text", "source"}
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in skip}


def parse_response(text: str) -> dict:
    """Isolate and parse the JSON object embedded in a model response."""
    m = _JSON_SPAN.search(text or "")
    if m is None:
        raise ExtractionMalformed("Could not find a JSON object in the response", text)
    try:
        data = json.loads(m.group(0), parse_float=Decimal)
    except json.JSONDecodeError as e:
        raise ExtractionMalformed(f"Could not parse the response JSON: {e}", text) from e
    if not isinstance(data, dict):
        raise ExtractionMalformed("Response JSON is not an object", text)
    return data


class VisionExtractor(ABC):
    """Abstract base for receipt value extraction from a photo."""

    def __init__(self, api_key: str = "", model: str = "") -> None:
        self._api_key = api_key
        self._model = model

    @property
    def name(self) -> str:
        return type(self).__name__

    def ensure_configured(self) -> None:
        """Raise ConfigurationError if the backend has no credential."""
        if not self._api_key:
            raise ConfigurationError(self._missing_key_message())

    @abstractmethod
    def _missing_key_message(self) -> str: ...

    @abstractmethod
    async def _complete(self, image: NormalizedImage, prompt: str) -> str:
        """Send one image plus prompt and return the model's text answer."""
        ...

    async def extract(
        self, image: NormalizedImage, captured_at: datetime | None = None
    ) -> ExtractionResult:
        """Extract receipt values from a normalized photo.

        Raises:
            ConfigurationError: If no API key is configured (no call is made).
            ExtractionUnavailable: If the service call fails.
            ExtractionMalformed: If the answer holds no parseable JSON object.
        """
        from .prompt import EXTRACTION_PROMPT

        self.ensure_configured()
        try:
            text = await self._complete(image, EXTRACTION_PROMPT)
        except ImportError:
            raise
        except Exception as e:
            raise ExtractionUnavailable(f"{self.name} request failed: {e}") from e

        logger.debug("%s response: %s", self.name, text)
        return ExtractionResult.from_response(text, captured_at)


def create_extractor(config: MilkTrackConfig) -> VisionExtractor:
    """Create a vision backend based on configuration."""
    backend_name = config.vision.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiVisionExtractor

            return GeminiVisionExtractor(
                api_key=config.vision.gemini.api_key,
                model=config.vision.gemini.model,
            )
        case "claude":
            from .claude import ClaudeVisionExtractor

            return ClaudeVisionExtractor(
                api_key=config.vision.claude.api_key,
                model=config.vision.claude.model,
            )
        case _:
            raise ValueError(
                f"Unknown vision backend: {backend_name!r} (choose gemini or claude)"
            )
