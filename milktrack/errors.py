"""Error taxonomy for the receipt ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass


class MilkTrackError(Exception):
    """Base class for every error the pipeline surfaces to the user."""


class ConfigurationError(MilkTrackError):
    """A required setting (usually an API key) is missing."""


class EncodeFailed(MilkTrackError):
    """The captured photo could not be decoded or re-encoded."""


class ExtractionUnavailable(MilkTrackError):
    """The vision service could not be reached. Retry by capturing again."""


class ExtractionMalformed(MilkTrackError):
    """The model answered without a parseable JSON object."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


@dataclass(frozen=True)
class FieldViolation:
    field: str
    message: str
    value: str | None = None

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ValidationViolation(MilkTrackError):
    """One or more receipt fields are out of range or badly formatted."""

    def __init__(self, violations: list[FieldViolation]) -> None:
        self.violations = list(violations)
        detail = "; ".join(str(v) for v in self.violations)
        super().__init__(f"Invalid receipt: {detail}")

    @property
    def fields(self) -> set[str]:
        return {v.field for v in self.violations}


class PersistenceRejected(MilkTrackError):
    """The store refused a write (authorization or constraint failure)."""


class StaleResult(MilkTrackError):
    """A result arrived for a capture the user has since abandoned."""
