from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from machinepos.errors import ValidationError
from machinepos.time_utils import parse_iso_datetime


# Upper bound for any money field: 9,999,999,999.99
MAX_AMOUNT = Decimal("9999999999.99")

_PHONE_FORMATTING = re.compile(r"[\s\-().]")

# Local: 0 + non-zero + 8 digits. Country: +94 + 9 digits. Fallback: E.164-ish.
_PHONE_LOCAL = re.compile(r"^0[1-9]\d{8}$")
_PHONE_COUNTRY = re.compile(r"^\+94[1-9]\d{8}$")
_PHONE_INTERNATIONAL = re.compile(r"^\+[1-9]\d{6,14}$")

_NIC = re.compile(r"^(\d{9}[VX]|\d{12})$")
_EMAIL = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.[A-Za-z]{2,}$")
_PLAIN_INT = re.compile(r"^-?\d+$")


# =============================================================================
# CUSTOMER IDENTITY FIELDS
# =============================================================================

def normalize_phone(phone: str | None) -> str:
    """Strip spaces, dashes, parentheses and dots."""
    if not phone:
        return ""
    return _PHONE_FORMATTING.sub("", str(phone).strip())


def is_valid_phone(phone: str | None) -> bool:
    clean = normalize_phone(phone)
    return bool(
        _PHONE_LOCAL.match(clean)
        or _PHONE_COUNTRY.match(clean)
        or _PHONE_INTERNATIONAL.match(clean)
    )


def normalize_nic(nic: str | None) -> str | None:
    if nic is None:
        return None
    clean = str(nic).strip().upper()
    return clean or None


def is_valid_nic(nic: str | None) -> bool:
    return nic is None or bool(_NIC.match(nic))


def normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    clean = str(email).strip().lower()
    return clean or None


def is_valid_email(email: str | None) -> bool:
    return email is None or bool(_EMAIL.match(email))


def check_customer_fields(
    *,
    name: str | None,
    phone: str | None,
    email: str | None = None,
    nic: str | None = None,
    partial: bool = False,
) -> dict[str, str]:
    """
    Field-level checks shared by the sale path and the customer endpoints.
    Returns {field: message}; empty when everything passes. Values are
    expected already normalized.
    """
    errors: dict[str, str] = {}

    if name is not None or not partial:
        if not name:
            errors["name"] = "Customer name is required"
        elif len(name) < 2:
            errors["name"] = "Name must be at least 2 characters long"
        elif len(name) > 100:
            errors["name"] = "Name cannot exceed 100 characters"

    if phone is not None or not partial:
        if not phone:
            errors["phone"] = "Phone number is required"
        elif not is_valid_phone(phone):
            errors["phone"] = (
                f'Phone number "{phone}" is invalid. Expected a local number '
                "(0771234567) or an international number (+94771234567, +1234567890)"
            )

    if not is_valid_email(email):
        errors["email"] = "Please enter a valid email address"

    if not is_valid_nic(nic):
        errors["nic"] = "Please enter a valid NIC number (9 digits + V/X or 12 digits)"

    return errors


# =============================================================================
# SCALAR COERCION
# =============================================================================

def to_int(value: Any, field: str) -> int:
    """Strict integer: rejects bools, floats with a fraction, and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", errors={field: "must be an integer"})
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer, not a decimal", errors={field: "must be an integer"})
    if isinstance(value, str):
        stripped = value.strip()
        if _PLAIN_INT.match(stripped):
            return int(stripped)
    raise ValidationError(f"{field} must be an integer", errors={field: "must be an integer"})


def to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", errors={field: "must be a number"})
    try:
        # str() first so 0.1 becomes Decimal("0.1"), not its binary expansion
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", errors={field: "must be a number"})
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", errors={field: "must be a finite number"})
    return result


def to_amount(value: Any, field: str) -> Decimal:
    """Non-negative money value."""
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", errors={field: "cannot be negative"})
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}", errors={field: "too large"})
    return amount


def to_percentage(value: Any, field: str) -> Decimal:
    pct = to_decimal(value, field)
    if pct < 0 or pct > 100:
        raise ValidationError(f"{field} must be between 0 and 100", errors={field: "must be between 0 and 100"})
    return pct


# =============================================================================
# MODEL PAYLOADS
# =============================================================================

@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = frozenset()  # type: ignore[assignment]


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return to_int(value, col.key)

    if isinstance(coltype, Numeric):
        return to_decimal(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against the model's column metadata
    (nullable, type, String length) and the policy allowlist.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                errors={f: f"{f} is required" for f in missing},
            )

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", errors={k: "cannot be null"})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank", errors={k: "cannot be blank"})

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", errors={k: "too long"})

        patch[k] = val

    return patch


def enforce_rules_machine(patch: dict) -> None:
    """Inventory rules not captured by column metadata."""
    from machinepos.models.inventory import MACHINE_CATEGORIES

    if "price" in patch and patch["price"] is not None:
        price = patch["price"]
        if price < 0:
            raise ValidationError("Price cannot be negative", errors={"price": "cannot be negative"})
        if price > MAX_AMOUNT:
            raise ValidationError(f"Price cannot exceed {MAX_AMOUNT}", errors={"price": "too large"})

    if "quantity" in patch and patch["quantity"] is not None and patch["quantity"] < 0:
        raise ValidationError("Quantity cannot be negative", errors={"quantity": "cannot be negative"})

    if "category" in patch and patch["category"] not in MACHINE_CATEGORIES:
        raise ValidationError(
            f"Category must be one of: {', '.join(MACHINE_CATEGORIES)}",
            errors={"category": "invalid category"},
        )
