from __future__ import annotations

import re
from datetime import date
from typing import Any

from vehicle_safety.data_models import VehicleIdentity
from vehicle_safety.errors import InvalidIdentity, InvalidVin


MIN_MODEL_YEAR = 1900

_VIN_RE = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")
_WS_RE = re.compile(r"\s+")


def _clean_name(value: Any, field_name: str) -> str:
    if value is None or not isinstance(value, str):
        raise InvalidIdentity(f"{field_name} is required")
    cleaned = _WS_RE.sub(" ", value).strip().upper()
    if not cleaned:
        raise InvalidIdentity(f"{field_name} is required")
    return cleaned


def _parse_year(value: Any, current_year: int) -> int:
    if isinstance(value, bool):
        raise InvalidIdentity(f"year must be numeric, got {value!r}")
    if isinstance(value, int):
        year = value
    elif isinstance(value, str) and value.strip().isdecimal():
        year = int(value.strip())
    else:
        raise InvalidIdentity(f"year must be numeric, got {value!r}")

    latest = current_year + 1
    if not MIN_MODEL_YEAR <= year <= latest:
        raise InvalidIdentity(f"year must be between {MIN_MODEL_YEAR} and {latest}, got {year}")
    return year


def validate_vin(raw_vin: str) -> str:
    """Return the upper-cased VIN or raise InvalidVin.

    A VIN is 17 characters from A-Z and 0-9, excluding I, O and Q.
    """
    vin = (raw_vin or "").strip().upper()
    if len(vin) != 17:
        raise InvalidVin(f"Invalid VIN length: {len(vin)} characters (must be 17)")
    if not _VIN_RE.match(vin):
        raise InvalidVin("Invalid VIN format: must be alphanumeric (excluding I, O, Q)")
    return vin


def resolve(
    raw_make: Any,
    raw_model: Any,
    raw_year: Any,
    raw_vin: str | None = None,
    *,
    current_year: int | None = None,
) -> VehicleIdentity:
    if current_year is None:
        current_year = date.today().year

    make = _clean_name(raw_make, "make")
    model = _clean_name(raw_model, "model")
    year = _parse_year(raw_year, current_year)

    vin = None
    if raw_vin is not None and raw_vin.strip():
        vin = validate_vin(raw_vin)

    return VehicleIdentity(make=make, model=model, year=year, vin=vin)
