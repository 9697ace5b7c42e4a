"""Reconcile extracted values and manual edits into one canonical receipt."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .models import MANUAL_IMAGE_SENTINEL, VALUE_FIELDS, CanonicalReceipt, EntrySource
from .vision import ExtractionResult

logger = logging.getLogger(__name__)

# CLR ≈ SNF + 0.25 × fat (dairy rule of thumb)
FAT_FACTOR = Decimal("0.25")
_TWO_PLACES = Decimal("0.01")

OVERRIDABLE_FIELDS: frozenset[str] = frozenset(VALUE_FIELDS) | {"snf"}


def derive_clr(snf: str, fat: str) -> str | None:
    """Compute CLR from SNF % and fat %, rounded to two decimals."""
    try:
        value = Decimal(snf) + FAT_FACTOR * Decimal(fat)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return str(value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


class FieldNormalizer:
    """Pure merge of extraction output and manual overrides."""

    def reconcile(
        self,
        extracted: ExtractionResult,
        overrides: Mapping[str, str | None] | None = None,
    ) -> CanonicalReceipt:
        """Produce the canonical receipt.

        Order: extracted values, then overrides field by field (``None``
        means "not provided", an empty string clears the field), then CLR
        derivation when only SNF and fat are known. Whatever is still
        missing stays unset.
        """
        values = extracted.values()

        for name, value in (overrides or {}).items():
            if name not in OVERRIDABLE_FIELDS:
                raise ValueError(f"Unknown receipt field: {name!r}")
            if value is None:
                continue
            text = str(value).strip()
            values[name] = text or None

        if values.get("clr") is None and values.get("snf") and values.get("fat"):
            values["clr"] = derive_clr(values["snf"], values["fat"])
            if values["clr"] is None:
                logger.debug(
                    "CLR not derived from snf=%r fat=%r", values["snf"], values["fat"]
                )

        image_url = (
            MANUAL_IMAGE_SENTINEL if extracted.source is EntrySource.MANUAL else None
        )
        return CanonicalReceipt(
            **{name: values.get(name) for name in VALUE_FIELDS},
            image_url=image_url,
        )


def reconcile(
    extracted: ExtractionResult,
    overrides: Mapping[str, str | None] | None = None,
) -> CanonicalReceipt:
    return FieldNormalizer().reconcile(extracted, overrides)
