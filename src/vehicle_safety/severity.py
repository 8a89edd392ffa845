from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from vehicle_safety.config import DEFAULT_RULES, SeverityRules
from vehicle_safety.data_models import ComplaintRecord, RecallRecord, SeverityTier


def _matches(text: str, keywords: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def _tier_for_text(text: str, high: Iterable[str], low: Iterable[str]) -> SeverityTier:
    if _matches(text, high):
        return SeverityTier.HIGH
    if _matches(text, low):
        return SeverityTier.LOW
    return SeverityTier.MEDIUM


def classify_recall(record: RecallRecord, rules: SeverityRules = DEFAULT_RULES) -> SeverityTier:
    return _tier_for_text(record.consequence, rules.recall_high_keywords, rules.recall_low_keywords)


def classify_complaint(record: ComplaintRecord, rules: SeverityRules = DEFAULT_RULES) -> SeverityTier:
    # Crash and fire reports outrank anything the summary text says.
    if record.crash_indicator or record.fire_indicator:
        return SeverityTier.HIGH
    return _tier_for_text(record.summary, rules.complaint_high_keywords, rules.complaint_low_keywords)


def classify_recalls(records: Iterable[RecallRecord], rules: SeverityRules = DEFAULT_RULES) -> list[RecallRecord]:
    return [replace(r, severity=classify_recall(r, rules)) for r in records]


def classify_complaints(
    records: Iterable[ComplaintRecord], rules: SeverityRules = DEFAULT_RULES
) -> list[ComplaintRecord]:
    return [replace(c, severity=classify_complaint(c, rules)) for c in records]
