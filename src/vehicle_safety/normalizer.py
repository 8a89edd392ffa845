"""Map raw NHTSA feed payloads onto RecallRecord / ComplaintRecord.

The feeds mix a current camel/Pascal-case convention with the legacy
upper-case one, and either may be missing a field entirely. Every field is
read through ``lookup`` with the alias tables below, current name first.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping, Sequence

from vehicle_safety.data_models import ComplaintRecord, RawFeedPayload, RecallRecord


RESULTS_KEYS = ("results", "Results")

RECALL_FIELDS: dict[str, tuple[str, ...]] = {
    "recall_id": ("NHTSACampaignNumber", "nhtsaCampaignNumber", "campaignNumber"),
    "component": ("Component", "component"),
    "summary": ("Summary", "summary"),
    # "Conequence" is a misspelling some feed versions actually ship.
    "consequence": ("Consequence", "consequence", "Conequence"),
    "remedy": ("Remedy", "remedy"),
    "date_initiated": ("ReportReceivedDate", "reportReceivedDate"),
    "manufacturer": ("Manufacturer", "manufacturer"),
    "park_it": ("parkIt", "ParkIt"),
    "park_outside": ("parkOutSide", "ParkOutSide", "parkOutside"),
}

COMPLAINT_FIELDS: dict[str, tuple[str, ...]] = {
    "odi_number": ("odiNumber", "ODI_NUMBER", "ODINumber"),
    "component": ("components", "COMPDESC", "Component", "component"),
    "summary": ("summary", "SUMMARY", "Summary"),
    "date_of_incident": ("dateOfIncident", "DATEA", "DateOfIncident"),
    "crash": ("crash", "CRASH", "Crash"),
    "fire": ("fire", "FIRE", "Fire"),
    "injuries": ("numberOfInjuries", "INJURED", "NumberOfInjuries"),
    "deaths": ("numberOfDeaths", "DEATHS", "NumberOfDeaths"),
    "vehicle_speed": ("vehicleSpeed", "VEH_SPEED", "VehicleSpeed"),
}

RECALL_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%Y%m%d")
COMPLAINT_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y%m%d")

_TRUTHY = {"Y", "YES", "TRUE", "1"}


def lookup(record: Mapping[str, Any], names: Sequence[str], default: Any = "") -> Any:
    for name in names:
        value = record.get(name)
        if value is not None:
            return value
    return default


def feed_results(raw: RawFeedPayload | None) -> list[Any]:
    if not isinstance(raw, Mapping):
        return []
    results = lookup(raw, RESULTS_KEYS, default=None)
    return results if isinstance(results, list) else []


def _text(record: Mapping[str, Any], names: Sequence[str]) -> str:
    value = lookup(record, names)
    return str(value).strip()


def _flag(record: Mapping[str, Any], names: Sequence[str]) -> bool:
    value = lookup(record, names, default=False)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().upper() in _TRUTHY


def _count(record: Mapping[str, Any], names: Sequence[str]) -> int:
    value = lookup(record, names, default=0)
    if isinstance(value, bool):
        return int(value)
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0


def parse_feed_date(value: str, formats: Sequence[str] = RECALL_DATE_FORMATS) -> date | None:
    candidate = (value or "").strip()
    if not candidate:
        return None
    if "T" in candidate:
        candidate = candidate.split("T", 1)[0]
    for fmt in formats:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
    return None


def _date_text(record: Mapping[str, Any], names: Sequence[str], formats: Sequence[str]) -> str:
    raw = _text(record, names)
    parsed = parse_feed_date(raw, formats)
    return parsed.isoformat() if parsed else raw


def sort_key_date(value: str) -> date:
    """Sort key for normalized date strings; unparseable dates sort as oldest."""
    return parse_feed_date(value, ("%Y-%m-%d",)) or date.min


def _rows(raw: RawFeedPayload | None) -> list[Mapping[str, Any]]:
    return [row for row in feed_results(raw) if isinstance(row, Mapping)]


def normalize_recalls(raw: RawFeedPayload | None) -> list[RecallRecord]:
    out: list[RecallRecord] = []
    for row in _rows(raw):
        out.append(
            RecallRecord(
                recall_id=_text(row, RECALL_FIELDS["recall_id"]),
                component=_text(row, RECALL_FIELDS["component"]),
                summary=_text(row, RECALL_FIELDS["summary"]),
                consequence=_text(row, RECALL_FIELDS["consequence"]),
                remedy=_text(row, RECALL_FIELDS["remedy"]),
                date_initiated=_date_text(row, RECALL_FIELDS["date_initiated"], RECALL_DATE_FORMATS),
                manufacturer=_text(row, RECALL_FIELDS["manufacturer"]),
                park_it=_flag(row, RECALL_FIELDS["park_it"]),
                park_outside=_flag(row, RECALL_FIELDS["park_outside"]),
            )
        )
    return out


def normalize_complaints(raw: RawFeedPayload | None) -> list[ComplaintRecord]:
    out: list[ComplaintRecord] = []
    for row in _rows(raw):
        out.append(
            ComplaintRecord(
                odi_number=_text(row, COMPLAINT_FIELDS["odi_number"]),
                component=_text(row, COMPLAINT_FIELDS["component"]),
                summary=_text(row, COMPLAINT_FIELDS["summary"]),
                date_of_incident=_date_text(row, COMPLAINT_FIELDS["date_of_incident"], COMPLAINT_DATE_FORMATS),
                crash_indicator=_flag(row, COMPLAINT_FIELDS["crash"]),
                fire_indicator=_flag(row, COMPLAINT_FIELDS["fire"]),
                injuries=_count(row, COMPLAINT_FIELDS["injuries"]),
                deaths=_count(row, COMPLAINT_FIELDS["deaths"]),
                vehicle_speed=_count(row, COMPLAINT_FIELDS["vehicle_speed"]),
            )
        )
    return out
