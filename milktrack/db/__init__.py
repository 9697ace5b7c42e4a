"""SQLite storage for profiles, receipts and AI records."""

from .ai_records import AIRecordDB
from .bucket import ImageBucket, LocalImageBucket
from .profiles import ProfileDB
from .receipts import ReceiptStore, SQLiteReceiptStore
from .schema import ensure_schema

__all__ = [
    "AIRecordDB",
    "ImageBucket",
    "LocalImageBucket",
    "ProfileDB",
    "ReceiptStore",
    "SQLiteReceiptStore",
    "ensure_schema",
]
