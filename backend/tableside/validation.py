# Overview: Typed coercion for dynamic attribute values, money, and request input.

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Literal

from .errors import ValidationError


FIELD_TEXT = "text"
FIELD_NUMBER = "number"
FIELD_UUID = "uuid"
FIELD_BOOLEAN = "boolean"
FIELD_JSON = "json"

VALID_FIELD_TYPES = {FIELD_TEXT, FIELD_NUMBER, FIELD_UUID, FIELD_BOOLEAN, FIELD_JSON}

# dynamic_attributes.field_value is String(1024)
FIELD_VALUE_MAX_LENGTH = 1024

FieldType = Literal["text", "number", "uuid", "boolean", "json"]

CENT = Decimal("0.01")

# Maximum money value: 9,999,999,999.99 fits Numeric(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")


@dataclass(frozen=True)
class AttributeValue:
    """
    A dynamic attribute value tagged with its storage type.

    Stored as text in dynamic_attributes.field_value; `kind` tells readers how
    to decode it.
    """
    kind: str
    value: Any

    def __post_init__(self):
        if self.kind not in VALID_FIELD_TYPES:
            raise ValidationError(
                f"Invalid field_type '{self.kind}'. Must be one of: {', '.join(sorted(VALID_FIELD_TYPES))}"
            )

    @classmethod
    def text(cls, value: str) -> "AttributeValue":
        return cls(FIELD_TEXT, value)

    @classmethod
    def number(cls, value) -> "AttributeValue":
        return cls(FIELD_NUMBER, value)

    @classmethod
    def uuid(cls, value) -> "AttributeValue":
        return cls(FIELD_UUID, value)

    @classmethod
    def boolean(cls, value: bool) -> "AttributeValue":
        return cls(FIELD_BOOLEAN, value)

    def encode(self) -> str:
        return encode_field_value(self.value, self.kind)


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """Strict numeric coercion; rejects booleans, blanks, NaN and infinities."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def round_money(value: Any) -> Decimal:
    """Quantize to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: Any, field: str = "amount", *, allow_negative: bool = False) -> Decimal:
    amount = to_decimal(value, field).quantize(CENT, rounding=ROUND_HALF_UP)
    if not allow_negative and amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")
    return amount


def to_positive_int(value: Any, field: str) -> int:
    # Integers - strict validation to reject floats and scientific notation
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if result <= 0:
        raise ValidationError(f"{field} must be > 0")
    return result


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def normalize_uuid(value: Any, field: str = "id") -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, AttributeError, TypeError):
        raise ValidationError(f"{field} must be a UUID")


# =============================================================================
# DYNAMIC ATTRIBUTE ENCODING
# =============================================================================

def infer_field_type(value: Any) -> str:
    if isinstance(value, AttributeValue):
        return value.kind
    if isinstance(value, bool):
        return FIELD_BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return FIELD_NUMBER
    if isinstance(value, (dict, list)):
        return FIELD_JSON
    return FIELD_TEXT


def encode_field_value(value: Any, field_type: str) -> str | None:
    """Serialize a Python value to the text column for the given field type."""
    if field_type not in VALID_FIELD_TYPES:
        raise ValidationError(f"Invalid field_type '{field_type}'")
    if value is None:
        return None

    if field_type == FIELD_NUMBER:
        number = to_decimal(value, "field_value")
        return format(number, "f")
    if field_type == FIELD_BOOLEAN:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower()
        raise ValidationError("field_value must be a boolean")
    if field_type == FIELD_UUID:
        return normalize_uuid(value, "field_value")
    if field_type == FIELD_JSON:
        try:
            text = json.dumps(value, default=str, sort_keys=True)
        except (TypeError, ValueError):
            raise ValidationError("field_value must be JSON serializable")
    else:
        text = str(value)
    if len(text) > FIELD_VALUE_MAX_LENGTH:
        raise ValidationError(f"field_value exceeds max length {FIELD_VALUE_MAX_LENGTH}")
    return text


def decode_field_value(text: str | None, field_type: str) -> Any:
    """Inverse of encode_field_value."""
    if text is None:
        return None
    if field_type == FIELD_NUMBER:
        return to_decimal(text, "field_value")
    if field_type == FIELD_BOOLEAN:
        return text.strip().lower() == "true"
    if field_type == FIELD_UUID:
        return normalize_uuid(text, "field_value")
    if field_type == FIELD_JSON:
        try:
            return json.loads(text)
        except ValueError:
            raise ValidationError("Stored field_value is not valid JSON")
    return text
