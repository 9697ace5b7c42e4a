"""Tests for reconciling extracted values with manual edits."""

from datetime import datetime

import pytest

from milktrack.models import MANUAL_IMAGE_SENTINEL, CanonicalReceipt
from milktrack.normalize import FieldNormalizer, derive_clr, reconcile
from milktrack.vision import ExtractionResult


@pytest.fixture
def extracted():
    return ExtractionResult(
        raw_text="{}",
        date="05/01/2024",
        quantity="10.5",
        fat="4.2",
        clr="28.5",
        base_rate="780",
        rate="45.10",
        amount="473.55",
    )


class TestDeriveClr:
    def test_example_value(self):
        assert derive_clr("3.2", "4.0") == "4.20"

    def test_typical_milk(self):
        assert derive_clr("8.5", "4.2") == "9.55"

    def test_rounds_half_up(self):
        # 8.005 + 0.25 * 0 = 8.005 -> 8.01
        assert derive_clr("8.005", "0") == "8.01"

    def test_non_numeric(self):
        assert derive_clr("abc", "4.0") is None


class TestReconcile:
    def test_copies_extracted_values(self, extracted):
        receipt = reconcile(extracted)
        assert isinstance(receipt, CanonicalReceipt)
        assert receipt.date == "05/01/2024"
        assert receipt.quantity == "10.5"
        assert receipt.clr == "28.5"
        assert receipt.fat_kg is None
        assert receipt.image_url is None

    def test_idempotent(self, extracted):
        normalizer = FieldNormalizer()
        first = normalizer.reconcile(extracted)
        second = normalizer.reconcile(extracted)
        assert first == second

    def test_idempotent_with_same_overrides(self, extracted):
        overrides = {"fat": "4.3"}
        assert reconcile(extracted, overrides) == reconcile(extracted, overrides)

    def test_override_replaces_value(self, extracted):
        receipt = reconcile(extracted, {"amount": "480.00", "fat_kg": "0.44"})
        assert receipt.amount == "480.00"
        assert receipt.fat_kg == "0.44"
        assert receipt.quantity == "10.5"

    def test_none_override_keeps_extracted(self, extracted):
        receipt = reconcile(extracted, {"amount": None})
        assert receipt.amount == "473.55"

    def test_empty_override_clears_field(self, extracted):
        receipt = reconcile(extracted, {"clr": ""})
        assert receipt.clr is None

    def test_override_is_stripped(self, extracted):
        receipt = reconcile(extracted, {"rate": "  46 "})
        assert receipt.rate == "46"

    def test_unknown_override(self, extracted):
        with pytest.raises(ValueError, match="Unknown receipt field"):
            reconcile(extracted, {"colour": "white"})

    def test_does_not_mutate_extraction(self, extracted):
        reconcile(extracted, {"fat": "5.0"})
        assert extracted.fat == "4.2"

    def test_clr_derived_from_snf_and_fat(self):
        result = ExtractionResult.manual(date="05/01/2024", fat="4.0", snf="3.2")
        receipt = reconcile(result)
        assert receipt.clr == "4.20"

    def test_explicit_clr_is_not_replaced(self):
        result = ExtractionResult.manual(date="05/01/2024", fat="4.0", snf="3.2", clr="27")
        assert reconcile(result).clr == "27"

    def test_clr_derived_after_clearing_override(self):
        result = ExtractionResult.manual(fat="4.0", snf="3.2", clr="27")
        assert reconcile(result, {"clr": ""}).clr == "4.20"

    def test_no_derivation_without_snf(self, extracted):
        receipt = reconcile(extracted, {"clr": ""})
        assert receipt.clr is None

    def test_manual_entries_use_sentinel_image(self):
        result = ExtractionResult.manual(date="2024-01-05", quantity="10")
        receipt = reconcile(result)
        assert receipt.image_url == MANUAL_IMAGE_SENTINEL
        assert receipt.date == "05/01/2024"

    def test_date_fallback_carries_through(self):
        captured_at = datetime(2024, 2, 29, 6, 0)
        result = ExtractionResult.from_response('{"quantity": "8"}', captured_at)
        assert reconcile(result).date == "29/02/2024"

    def test_zero_is_not_treated_as_missing(self):
        result = ExtractionResult(raw_text="{}", fat="0", snf="8.0")
        assert reconcile(result).clr == "8.00"
