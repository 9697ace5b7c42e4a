"""Data models for captured photos, receipts, profiles and AI records."""

from __future__ import annotations

import mimetypes
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from enum import Enum
from pathlib import Path

DATE_FORMAT = "%d/%m/%Y"

# image_url of a record typed in by hand, with no photo behind it
MANUAL_IMAGE_SENTINEL = "manual://entry"

# Columns holding receipt values, in display order
VALUE_FIELDS: tuple[str, ...] = (
    "date",
    "quantity",
    "fat",
    "clr",
    "fat_kg",
    "snf_kg",
    "base_rate",
    "rate",
    "amount",
)


def format_receipt_date(moment: datetime) -> str:
    """Format a timestamp the way receipts print dates (DD/MM/YYYY)."""
    return moment.strftime(DATE_FORMAT)


class Role(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    @property
    def can_create(self) -> bool:
        return self in (Role.ADMIN, Role.MEMBER)

    @property
    def can_modify(self) -> bool:
        return self is Role.ADMIN


class EntrySource(str, Enum):
    CAMERA = "camera"
    MANUAL = "manual"


@dataclass
class RawCapture:
    """A photo as it came off the device, before any processing."""

    data: bytes
    captured_at: datetime
    filename: str = "capture.jpg"
    mime_type: str = "image/jpeg"

    @classmethod
    def from_path(cls, path: str | Path) -> RawCapture:
        """Read a photo from disk, using its modification time as capture time."""
        p = Path(path)
        data = p.read_bytes()
        captured_at = datetime.fromtimestamp(p.stat().st_mtime)
        mime_type = mimetypes.guess_type(p.name)[0] or "image/jpeg"
        return cls(data=data, captured_at=captured_at, filename=p.name, mime_type=mime_type)

    @classmethod
    def from_bytes(
        cls, data: bytes, captured_at: datetime | None = None, filename: str = "capture.jpg"
    ) -> RawCapture:
        mime_type = mimetypes.guess_type(filename)[0] or "image/jpeg"
        return cls(
            data=data,
            captured_at=captured_at or datetime.now(),
            filename=filename,
            mime_type=mime_type,
        )

    @property
    def capture_date(self) -> str:
        return format_receipt_date(self.captured_at)


@dataclass
class NormalizedImage:
    """A downscaled JPEG ready for upload and for the vision model."""

    data: bytes
    width: int
    height: int
    storage_name: str
    content_type: str = "image/jpeg"

    @property
    def size_kb(self) -> float:
        return len(self.data) / 1024


@dataclass
class CanonicalReceipt:
    """A normalized, user-confirmed receipt.

    Every value is kept as decimal text so that display and edit
    round-trips never introduce float rounding.
    """

    date: str | None = None
    quantity: str | None = None
    fat: str | None = None
    clr: str | None = None
    fat_kg: str | None = None
    snf_kg: str | None = None
    base_rate: str | None = None
    rate: str | None = None
    amount: str | None = None
    image_url: str | None = None
    id: str | None = None
    user_id: str | None = None
    created_at: str | None = None

    def values(self) -> dict[str, str | None]:
        return {name: getattr(self, name) for name in VALUE_FIELDS}

    def rendered_text(self) -> list[str]:
        """Every field rendered as text, as shown in the records table."""
        return [str(v) for v in asdict(self).values() if v is not None]

    def to_row(self) -> dict[str, str | None]:
        """Columns written on insert; ``id`` and timestamps are store-assigned."""
        row: dict[str, str | None] = dict(self.values())
        row["image_url"] = self.image_url
        return row

    @classmethod
    def from_row(cls, row: dict) -> CanonicalReceipt:
        names = {f.name for f in fields(cls)}
        kwargs = {k: row[k] for k in row.keys() if k in names}
        if kwargs.get("id") is not None:
            kwargs["id"] = str(kwargs["id"])
        return cls(**kwargs)


@dataclass
class Profile:
    id: str
    email: str
    role: Role = Role.MEMBER
    full_name: str | None = None
    phone: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


@dataclass
class AIBreedingRecord:
    """An artificial-insemination event for one animal."""

    animal_tag: str
    ai_date: str  # YYYY-MM-DD
    user_id: str = ""
    id: str | None = None
    created_at: str | None = None
