"""Receipt ingestion flow as an explicit state machine.

IDLE → CAPTURING → EXTRACTING → REVIEWING → VALIDATING → SAVING → SAVED,
with FAILED reachable from any step. One IngestionContext holds everything
the session knows about the receipt in progress.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from .db.receipts import ReceiptStore
from .errors import (
    FieldViolation,
    StaleResult,
    ValidationViolation,
)
from .image import ImageNormalizer
from .models import CanonicalReceipt, NormalizedImage, RawCapture
from .normalize import OVERRIDABLE_FIELDS, FieldNormalizer
from .validate import RecordValidator
from .vision import ExtractionResult, VisionExtractor

logger = logging.getLogger(__name__)


class IngestionState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    EXTRACTING = "extracting"
    REVIEWING = "reviewing"
    VALIDATING = "validating"
    SAVING = "saving"
    SAVED = "saved"
    FAILED = "failed"


_BUSY = {IngestionState.CAPTURING, IngestionState.EXTRACTING, IngestionState.SAVING}


@dataclass
class IngestionContext:
    generation: int = 0
    capture: RawCapture | None = None
    image: NormalizedImage | None = None
    extraction: ExtractionResult | None = None
    overrides: dict[str, str | None] = field(default_factory=dict)
    receipt: CanonicalReceipt | None = None
    violations: list[FieldViolation] = field(default_factory=list)
    error: Exception | None = None
    record_id: str | None = None


class IngestionSession:
    """Drives one user's receipt from photo (or manual entry) to the store."""

    def __init__(
        self,
        owner_id: str,
        extractor: VisionExtractor,
        store: ReceiptStore,
        *,
        normalizer: ImageNormalizer | None = None,
        field_normalizer: FieldNormalizer | None = None,
        validator: RecordValidator | None = None,
    ) -> None:
        self._owner_id = owner_id
        self._extractor = extractor
        self._store = store
        self._normalizer = normalizer or ImageNormalizer()
        self._field_normalizer = field_normalizer or FieldNormalizer()
        self._validator = validator or RecordValidator()
        self._state = IngestionState.IDLE
        self._ctx = IngestionContext()

    @property
    def state(self) -> IngestionState:
        return self._state

    @property
    def context(self) -> IngestionContext:
        return self._ctx

    def reset(self) -> None:
        """Abandon the receipt in progress; late results for it are discarded."""
        self._ctx = IngestionContext(generation=self._ctx.generation + 1)
        self._state = IngestionState.IDLE

    def _start_new(self) -> int:
        if self._state in _BUSY:
            raise RuntimeError(f"Session is busy ({self._state.value})")
        if self._state is not IngestionState.IDLE:
            self.reset()
        return self._ctx.generation

    def _ensure_current(self, generation: int, step: str) -> None:
        if generation != self._ctx.generation:
            logger.warning("Discarding stale %s result (capture was reset)", step)
            raise StaleResult(f"{step} finished after the capture was reset")

    def _fail(self, generation: int, step: str, error: Exception) -> None:
        self._ensure_current(generation, step)
        self._ctx.error = error
        self._state = IngestionState.FAILED

    def _review(self) -> CanonicalReceipt:
        assert self._ctx.extraction is not None
        receipt = self._field_normalizer.reconcile(self._ctx.extraction, self._ctx.overrides)
        self._ctx.receipt = receipt
        self._ctx.violations = self._validator.validate(receipt)
        self._ctx.error = None
        self._state = IngestionState.REVIEWING
        return receipt

    async def capture(self, raw: RawCapture) -> CanonicalReceipt:
        """Normalize a photo, extract its values and move to review.

        Raises:
            ConfigurationError: Before any work, if the vision backend has no key.
            EncodeFailed, ExtractionUnavailable, ExtractionMalformed: The
                session moves to FAILED; capture again to retry. Any other
                error (a missing SDK, say) also leaves the session FAILED.
            StaleResult: The session was reset while this call was running.
        """
        self._extractor.ensure_configured()
        generation = self._start_new()
        self._ctx.capture = raw
        self._state = IngestionState.CAPTURING

        try:
            image = await asyncio.to_thread(self._normalizer.normalize, raw, self._owner_id)
        except Exception as e:
            self._fail(generation, "normalize", e)
            raise
        self._ensure_current(generation, "normalize")
        self._ctx.image = image
        self._state = IngestionState.EXTRACTING

        try:
            extraction = await self._extractor.extract(image, raw.captured_at)
        except Exception as e:
            self._fail(generation, "extraction", e)
            raise
        self._ensure_current(generation, "extraction")
        self._ctx.extraction = extraction
        return self._review()

    def enter_manually(self, **values: str | None) -> CanonicalReceipt:
        """Start a receipt from values typed in by hand (no photo)."""
        self._start_new()
        self._ctx.extraction = ExtractionResult.manual(**values)
        return self._review()

    def edit(self, **overrides: str | None) -> CanonicalReceipt:
        """Apply field edits before the receipt is first saved."""
        if self._state not in (IngestionState.REVIEWING, IngestionState.FAILED):
            raise RuntimeError(f"Nothing to edit ({self._state.value})")
        if self._ctx.extraction is None:
            raise RuntimeError("Nothing to edit: no receipt has been captured")
        unknown = set(overrides) - OVERRIDABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown receipt field(s): {', '.join(sorted(unknown))}")
        self._ctx.overrides.update(overrides)
        return self._review()

    def validate(self) -> list[FieldViolation]:
        """Re-check the receipt under review and return any violations."""
        if self._state not in (IngestionState.REVIEWING, IngestionState.FAILED):
            raise RuntimeError(f"Nothing to validate ({self._state.value})")
        if self._ctx.receipt is None:
            raise RuntimeError("No receipt to validate")
        self._state = IngestionState.VALIDATING
        self._ctx.violations = self._validator.validate(self._ctx.receipt)
        self._state = IngestionState.REVIEWING
        return list(self._ctx.violations)

    async def save(self) -> str:
        """Validate and persist the receipt under review.

        A rejected write leaves the session FAILED with the receipt and
        photo still in the context, so saving can be retried without
        capturing again.
        """
        if self._state not in (IngestionState.REVIEWING, IngestionState.FAILED):
            raise RuntimeError(f"Nothing to save ({self._state.value})")
        receipt = self._ctx.receipt
        if receipt is None:
            raise RuntimeError("Nothing to save: no receipt has been captured")

        if self.validate():
            raise ValidationViolation(self._ctx.violations)

        self._state = IngestionState.SAVING
        try:
            record_id = self._store.save(self._owner_id, receipt, self._ctx.image)
        except ValidationViolation as e:
            self._ctx.violations = e.violations
            self._state = IngestionState.REVIEWING
            raise
        except Exception as e:
            self._ctx.error = e
            self._state = IngestionState.FAILED
            raise

        self._ctx.record_id = record_id
        self._ctx.error = None
        self._state = IngestionState.SAVED
        return record_id
