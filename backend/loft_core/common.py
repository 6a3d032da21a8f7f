from __future__ import annotations

import datetime as dt
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import ValidationError

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def paginate(rows: Sequence[Dict[str, Any]], page: Any = 1, per_page: int = 20) -> Dict[str, Any]:
    """Slice ``rows`` into a page with the metadata list views return."""
    try:
        current = max(int(page or 1), 1)
    except (TypeError, ValueError):
        current = 1
    total = len(rows)
    last_page = max(math.ceil(total / per_page), 1)
    start = (current - 1) * per_page
    return {
        "data": list(rows[start:start + per_page]),
        "current_page": current,
        "per_page": per_page,
        "total": total,
        "last_page": last_page,
    }


def contains_text(value: Any, needle: str) -> bool:
    if value is None:
        return False
    return needle.lower() in str(value).lower()


def clean_text(value: Any, max_length: int | None = None) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_length] if max_length else text


def parse_date(value: Any) -> Optional[dt.date]:
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value)[:10])


def parse_number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("Booleans are not numbers")
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValueError("Number must be finite")
    return number


def parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def is_hex_color(value: Any) -> bool:
    return isinstance(value, str) and bool(_HEX_COLOR.match(value))


def same_id(left: Any, right: Any) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def index_by_id(rows: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {str(row.get("id")): row for row in rows}


class FieldErrors:
    """Collects field messages and raises them together as one ValidationError."""

    def __init__(self) -> None:
        self.errors: Dict[str, List[str]] = {}

    def add(self, field: str, message: str) -> None:
        self.errors.setdefault(field, []).append(message)

    def __contains__(self, field: str) -> bool:
        return field in self.errors

    def __bool__(self) -> bool:
        return bool(self.errors)

    def raise_if_any(self) -> None:
        if self.errors:
            raise ValidationError(self.errors)

    def date(self, payload: Mapping[str, Any], field: str, label: str) -> Optional[dt.date]:
        try:
            return parse_date(payload.get(field))
        except ValueError:
            self.add(field, f"The {label} is not a valid date.")
            return None

    def number(
        self,
        payload: Mapping[str, Any],
        field: str,
        label: str,
        minimum: float | None = None,
    ) -> Optional[float]:
        try:
            number = parse_number(payload.get(field))
        except (TypeError, ValueError):
            self.add(field, f"The {label} must be a number.")
            return None
        if number is not None and minimum is not None and number < minimum:
            self.add(field, f"The {label} must be at least {minimum:g}.")
        return number

    def text(
        self,
        payload: Mapping[str, Any],
        field: str,
        label: str,
        max_length: int = 255,
        required: bool = False,
    ) -> Optional[str]:
        value = payload.get(field)
        if value is not None and not isinstance(value, (str, int, float)):
            self.add(field, f"The {label} must be a string.")
            return None
        text = clean_text(value)
        if text is None:
            if required:
                self.add(field, f"The {label} field is required.")
            return None
        if len(text) > max_length:
            self.add(field, f"The {label} may not be greater than {max_length} characters.")
        return text

    def choice(
        self,
        payload: Mapping[str, Any],
        field: str,
        label: str,
        options: Sequence[str],
        default: Optional[str] = None,
    ) -> Optional[str]:
        value = payload.get(field)
        if value is None or value == "":
            return default
        if value not in options:
            self.add(field, f"The selected {label} is invalid.")
            return default
        return value
