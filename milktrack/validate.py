"""Per-field range and format checks for receipts.

The ranges are policy, not mechanism: they live in a rule table that the
``[validation]`` section of the config file can override field by field.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation

from .errors import FieldViolation, ValidationViolation
from .models import DATE_FORMAT, MANUAL_IMAGE_SENTINEL, CanonicalReceipt, EntrySource

DATE_PATTERN = r"^(0[1-9]|[12][0-9]|3[01])/(0[1-9]|1[012])/\d{4}$"


def _to_decimal(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


@dataclass(frozen=True)
class RangeRule:
    """Allowed values of one receipt field.

    Bounds are inclusive. ``manual_minimum``/``manual_maximum`` replace the
    bounds for records typed in by hand. ``date_format``, when set, must also
    parse the value as a real calendar date.
    """

    field: str
    minimum: Decimal | None = None
    maximum: Decimal | None = None
    pattern: str | None = None
    required: bool = False
    label: str = ""
    manual_minimum: Decimal | None = None
    manual_maximum: Decimal | None = None
    date_format: str | None = None

    def bounds(self, mode: EntrySource) -> tuple[Decimal | None, Decimal | None]:
        if mode is EntrySource.MANUAL:
            return (
                self.manual_minimum if self.manual_minimum is not None else self.minimum,
                self.manual_maximum if self.manual_maximum is not None else self.maximum,
            )
        return self.minimum, self.maximum

    def merged(self, override: dict) -> RangeRule:
        """Return a copy with values from a config-file table applied."""
        changes: dict = {}
        for key in ("minimum", "maximum", "manual_minimum", "manual_maximum"):
            if key in override:
                changes[key] = _to_decimal(override[key])
        for key in ("pattern", "required", "label", "date_format"):
            if key in override:
                changes[key] = override[key]
        return replace(self, **changes)

    def check(self, value: str | None, mode: EntrySource = EntrySource.CAMERA) -> FieldViolation | None:
        if value is None or str(value).strip() == "":
            if self.required:
                return FieldViolation(self.field, "Required")
            return None

        text = str(value).strip()
        if self.pattern is not None and not re.match(self.pattern, text):
            if self.field == "date":
                return FieldViolation(self.field, "Use DD/MM/YYYY format", text)
            return FieldViolation(self.field, "Invalid format", text)
        if self.date_format is not None:
            try:
                datetime.strptime(text, self.date_format)
            except ValueError:
                return FieldViolation(self.field, "Not a valid date", text)

        minimum, maximum = self.bounds(mode)
        if minimum is None and maximum is None:
            return None

        try:
            number = Decimal(text)
        except InvalidOperation:
            return FieldViolation(self.field, "Not a number", text)
        if not number.is_finite():
            return FieldViolation(self.field, "Not a number", text)

        if minimum is not None and number < minimum:
            return FieldViolation(self.field, f"Min {minimum}", text)
        if maximum is not None and number > maximum:
            return FieldViolation(self.field, f"Max {maximum}", text)
        return None


def default_rules() -> dict[str, RangeRule]:
    """The product's default validation table."""
    d = Decimal
    rules = [
        RangeRule(
            "date",
            pattern=DATE_PATTERN,
            required=True,
            label="Date",
            date_format=DATE_FORMAT,
        ),
        RangeRule("quantity", d("0.1"), d("500"), required=True, label="Quantity (Ltr)"),
        RangeRule("fat", d("2"), d("11"), required=True, label="Fat %"),
        RangeRule("clr", d("15"), d("40"), label="CLR"),
        RangeRule("fat_kg", d("0.01"), d("50"), label="Fat Kg"),
        RangeRule("snf_kg", d("0.01"), d("50"), label="SNF Kg"),
        RangeRule(
            "base_rate",
            d("0.1"),
            d("100"),
            label="Base Rate",
            manual_minimum=d("0.1"),
            manual_maximum=d("5"),
        ),
        RangeRule("rate", d("1"), d("200"), required=True, label="Avg. Rate"),
        RangeRule("amount", d("1"), d("100000"), required=True, label="Total Amount"),
    ]
    return {r.field: r for r in rules}


def entry_mode(record: CanonicalReceipt) -> EntrySource:
    if record.image_url == MANUAL_IMAGE_SENTINEL:
        return EntrySource.MANUAL
    return EntrySource.CAMERA


class RecordValidator:
    """Checks a receipt against a rule table."""

    def __init__(self, rules: dict[str, RangeRule] | None = None) -> None:
        self._rules = rules if rules is not None else default_rules()

    @property
    def rules(self) -> dict[str, RangeRule]:
        return self._rules

    def validate(
        self, record: CanonicalReceipt, mode: EntrySource | None = None
    ) -> list[FieldViolation]:
        """Return every violation found; an empty list means the record is valid."""
        mode = mode or entry_mode(record)
        violations: list[FieldViolation] = []
        for name, rule in self._rules.items():
            violation = rule.check(getattr(record, name, None), mode)
            if violation is not None:
                violations.append(violation)
        return violations

    def check_field(
        self, name: str, value: str | None, mode: EntrySource = EntrySource.CAMERA
    ) -> FieldViolation | None:
        """Inline check of a single field while it is being edited."""
        rule = self._rules.get(name)
        if rule is None:
            return None
        return rule.check(value, mode)

    def ensure_valid(self, record: CanonicalReceipt, mode: EntrySource | None = None) -> None:
        """Raise ValidationViolation if the record is not submittable."""
        violations = self.validate(record, mode)
        if violations:
            raise ValidationViolation(violations)


def validate(record: CanonicalReceipt, rules: dict[str, RangeRule] | None = None) -> list[FieldViolation]:
    return RecordValidator(rules).validate(record)
