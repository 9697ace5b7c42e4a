"""MilkTrack: read dairy collection receipts and keep monthly records."""

from .aggregate import MonthGroup, MonthlyView, RecordAggregator, group_by_month
from .config import MilkTrackConfig, load_config
from .errors import (
    ConfigurationError,
    EncodeFailed,
    ExtractionMalformed,
    ExtractionUnavailable,
    FieldViolation,
    MilkTrackError,
    PersistenceRejected,
    StaleResult,
    ValidationViolation,
)
from .image import ImageNormalizer
from .models import (
    AIBreedingRecord,
    CanonicalReceipt,
    NormalizedImage,
    Profile,
    RawCapture,
    Role,
)
from .normalize import FieldNormalizer, reconcile
from .pipeline import IngestionContext, IngestionSession, IngestionState
from .validate import RangeRule, RecordValidator
from .vision import ExtractionResult, VisionExtractor, create_extractor

__all__ = [
    "RawCapture",
    "NormalizedImage",
    "CanonicalReceipt",
    "Profile",
    "Role",
    "AIBreedingRecord",
    "ImageNormalizer",
    "VisionExtractor",
    "ExtractionResult",
    "create_extractor",
    "FieldNormalizer",
    "reconcile",
    "RangeRule",
    "RecordValidator",
    "RecordAggregator",
    "MonthGroup",
    "MonthlyView",
    "group_by_month",
    "IngestionSession",
    "IngestionState",
    "IngestionContext",
    "MilkTrackConfig",
    "load_config",
    "MilkTrackError",
    "ConfigurationError",
    "EncodeFailed",
    "ExtractionUnavailable",
    "ExtractionMalformed",
    "FieldViolation",
    "ValidationViolation",
    "PersistenceRejected",
    "StaleResult",
]
