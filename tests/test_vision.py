"""Tests for vision backends (mocked API calls)."""

import json
import sys
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from milktrack.config import load_config
from milktrack.errors import ConfigurationError, ExtractionMalformed, ExtractionUnavailable
from milktrack.models import EntrySource, NormalizedImage
from milktrack.vision import (
    ExtractionResult,
    VisionExtractor,
    create_extractor,
    iso_to_receipt_date,
    parse_response,
)
from milktrack.vision.claude import ClaudeVisionExtractor
from milktrack.vision.gemini import GeminiVisionExtractor
from milktrack.vision.prompt import EXTRACTION_PROMPT

CAPTURED_AT = datetime(2024, 1, 5, 7, 45)

FULL_RESPONSE = json.dumps({
    "date": "04/01/2024",
    "quantity": "10.5",
    "fat": "4.2",
    "clr": "28.5",
    "fatKg": "0.441",
    "snfKg": "0.893",
    "baseRate": "70.50",
    "rate": "45.10",
    "amount": "473.55",
})


@pytest.fixture
def image():
    return NormalizedImage(
        data=b"\xff\xd8\xff\xe0fake-jpeg",
        width=1200,
        height=1600,
        storage_name="user-1/1704440700000.jpg",
    )


class TestCreateExtractor:
    def test_create_gemini_extractor(self):
        config = load_config()
        extractor = create_extractor(config)
        assert isinstance(extractor, GeminiVisionExtractor)

    def test_create_claude_extractor(self):
        config = load_config()
        config.vision.backend = "claude"
        extractor = create_extractor(config)
        assert isinstance(extractor, ClaudeVisionExtractor)

    def test_create_unknown_backend(self):
        config = load_config()
        config.vision.backend = "unknown"
        with pytest.raises(ValueError, match="Unknown vision backend"):
            create_extractor(config)


class TestParseResponse:
    def test_plain_json(self):
        data = parse_response(FULL_RESPONSE)
        assert data["quantity"] == "10.5"

    def test_json_inside_markdown_fences(self):
        text = '```json\n{"quantity": "12", "fat": "3.9"}\n```'
        data = parse_response(text)
        assert data == {"quantity": "12", "fat": "3.9"}

    def test_json_with_surrounding_prose(self):
        text = 'Here are the values: {"rate": "44"} Hope this helps.'
        assert parse_response(text) == {"rate": "44"}

    def test_no_json_span(self):
        with pytest.raises(ExtractionMalformed) as exc_info:
            parse_response("I could not read this receipt.")
        assert exc_info.value.raw_text == "I could not read this receipt."

    def test_unparseable_span(self):
        with pytest.raises(ExtractionMalformed):
            parse_response("{quantity: 10.5,}")

    def test_two_objects_are_not_split(self):
        # The span runs from the first "{" to the last "}", which is not valid JSON
        with pytest.raises(ExtractionMalformed):
            parse_response('{"fat": "4"} and {"rate": "40"}')

    def test_empty_text(self):
        with pytest.raises(ExtractionMalformed):
            parse_response("")


class TestExtractionResult:
    def test_from_response_maps_wire_keys(self):
        result = ExtractionResult.from_response(FULL_RESPONSE, CAPTURED_AT)
        assert result.source is EntrySource.CAMERA
        assert result.date == "04/01/2024"
        assert result.fat_kg == "0.441"
        assert result.snf_kg == "0.893"
        assert result.base_rate == "70.50"
        assert result.rate == "45.10"
        assert result.amount == "473.55"
        assert result.raw_text == FULL_RESPONSE

    def test_missing_fields_stay_unset(self):
        result = ExtractionResult.from_response('{"quantity": "10"}', CAPTURED_AT)
        assert result.quantity == "10"
        assert result.fat is None
        assert result.clr is None
        assert result.amount is None

    def test_zero_is_kept(self):
        result = ExtractionResult.from_response('{"clr": 0, "fat": "0"}', CAPTURED_AT)
        assert result.clr == "0"
        assert result.fat == "0"

    def test_numbers_keep_their_decimal_text(self):
        result = ExtractionResult.from_response('{"rate": 45.10, "quantity": 10.50}', CAPTURED_AT)
        assert result.rate == "45.10"
        assert result.quantity == "10.50"

    def test_exponent_numbers_read_as_plain_text(self):
        result = ExtractionResult.from_response('{"amount": 1e3, "fat": 1.5E-2}', CAPTURED_AT)
        assert result.amount == "1000"
        assert result.fat == "0.015"

    def test_null_and_empty_are_unset(self):
        result = ExtractionResult.from_response('{"fat": null, "clr": "  "}', CAPTURED_AT)
        assert result.fat is None
        assert result.clr is None

    def test_date_falls_back_to_capture_time(self):
        result = ExtractionResult.from_response('{"quantity": "10"}', CAPTURED_AT)
        assert result.date == "05/01/2024"

    def test_date_without_capture_time_stays_unset(self):
        result = ExtractionResult.from_response('{"quantity": "10"}')
        assert result.date is None

    def test_manual_converts_iso_date(self):
        result = ExtractionResult.manual(date="2024-01-05", quantity="10", snf="8.5")
        assert result.source is EntrySource.MANUAL
        assert result.raw_text == "Manual entry"
        assert result.date == "05/01/2024"
        assert result.snf == "8.5"

    def test_iso_to_receipt_date_passes_other_text_through(self):
        assert iso_to_receipt_date("05/01/2024") == "05/01/2024"
        assert iso_to_receipt_date(None) is None


class TestPrompt:
    def test_prompt_names_every_field(self):
        for key in ("date", "quantity", "fat", "clr", "fatKg", "snfKg", "baseRate", "rate", "amount"):
            assert key in EXTRACTION_PROMPT

    def test_prompt_distinguishes_rates(self):
        assert "paise" in EXTRACTION_PROMPT.lower()


class TestGeminiVisionExtractor:
    @pytest.mark.asyncio
    async def test_extract_requires_api_key(self, image):
        mock_genai = MagicMock()
        mock_google = MagicMock()
        mock_google.generativeai = mock_genai

        with patch.dict(sys.modules, {"google": mock_google, "google.generativeai": mock_genai}):
            extractor = GeminiVisionExtractor(api_key="")
            with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
                await extractor.extract(image, CAPTURED_AT)

        mock_genai.GenerativeModel.assert_not_called()

    @pytest.mark.asyncio
    async def test_extract_mocked(self, image):
        """Test Gemini backend with mocked API call."""
        mock_response = MagicMock()
        mock_response.text = FULL_RESPONSE

        mock_model = MagicMock()
        mock_model.generate_content_async = AsyncMock(return_value=mock_response)

        mock_genai = MagicMock()
        mock_genai.GenerativeModel.return_value = mock_model
        mock_google = MagicMock()
        mock_google.generativeai = mock_genai

        with patch.dict(sys.modules, {"google": mock_google, "google.generativeai": mock_genai}):
            extractor = GeminiVisionExtractor(api_key="test-key")
            result = await extractor.extract(image, CAPTURED_AT)

        mock_genai.configure.assert_called_once_with(api_key="test-key")
        mock_genai.GenerativeModel.assert_called_once_with("gemini-2.5-flash")
        parts = mock_model.generate_content_async.call_args.args[0]
        assert parts[0] == EXTRACTION_PROMPT
        assert parts[1] == {"mime_type": "image/jpeg", "data": image.data}
        assert result.amount == "473.55"

    @pytest.mark.asyncio
    async def test_service_failure_is_unavailable(self, image):
        mock_model = MagicMock()
        mock_model.generate_content_async = AsyncMock(side_effect=RuntimeError("503"))
        mock_genai = MagicMock()
        mock_genai.GenerativeModel.return_value = mock_model
        mock_google = MagicMock()
        mock_google.generativeai = mock_genai

        with patch.dict(sys.modules, {"google": mock_google, "google.generativeai": mock_genai}):
            extractor = GeminiVisionExtractor(api_key="test-key")
            with pytest.raises(ExtractionUnavailable, match="503"):
                await extractor.extract(image, CAPTURED_AT)

    @pytest.mark.asyncio
    async def test_malformed_answer(self, image):
        mock_response = MagicMock()
        mock_response.text = "Sorry, the photo is too blurry."
        mock_model = MagicMock()
        mock_model.generate_content_async = AsyncMock(return_value=mock_response)
        mock_genai = MagicMock()
        mock_genai.GenerativeModel.return_value = mock_model
        mock_google = MagicMock()
        mock_google.generativeai = mock_genai

        with patch.dict(sys.modules, {"google": mock_google, "google.generativeai": mock_genai}):
            extractor = GeminiVisionExtractor(api_key="test-key")
            with pytest.raises(ExtractionMalformed):
                await extractor.extract(image, CAPTURED_AT)


class TestClaudeVisionExtractor:
    @pytest.mark.asyncio
    async def test_extract_requires_api_key(self, image):
        mock_anthropic = MagicMock()
        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            extractor = ClaudeVisionExtractor(api_key="")
            with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
                await extractor.extract(image, CAPTURED_AT)
        mock_anthropic.AsyncAnthropic.assert_not_called()

    @pytest.mark.asyncio
    async def test_extract_mocked(self, image):
        """Test Claude backend with mocked API call."""
        mock_response = MagicMock()
        mock_response.content = [MagicMock(text=f"```json\n{FULL_RESPONSE}\n```")]

        mock_client = AsyncMock()
        mock_client.messages.create = AsyncMock(return_value=mock_response)

        mock_anthropic = MagicMock()
        mock_anthropic.AsyncAnthropic.return_value = mock_client

        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            extractor = ClaudeVisionExtractor(api_key="test-key")
            result = await extractor.extract(image, CAPTURED_AT)

        mock_anthropic.AsyncAnthropic.assert_called_once_with(api_key="test-key")
        kwargs = mock_client.messages.create.call_args.kwargs
        content = kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"
        assert content[0]["source"]["media_type"] == "image/jpeg"
        assert content[1] == {"type": "text", "text": EXTRACTION_PROMPT}
        assert result.quantity == "10.5"
        assert result.date == "04/01/2024"

    @pytest.mark.asyncio
    async def test_service_failure_is_unavailable(self, image):
        mock_client = AsyncMock()
        mock_client.messages.create = AsyncMock(side_effect=ConnectionError("offline"))
        mock_anthropic = MagicMock()
        mock_anthropic.AsyncAnthropic.return_value = mock_client

        with patch.dict(sys.modules, {"anthropic": mock_anthropic}):
            extractor = ClaudeVisionExtractor(api_key="test-key")
            with pytest.raises(ExtractionUnavailable) as exc_info:
                await extractor.extract(image, CAPTURED_AT)
        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestVisionExtractorBase:
    def test_is_abstract(self):
        with pytest.raises(TypeError):
            VisionExtractor()  # type: ignore[abstract]
