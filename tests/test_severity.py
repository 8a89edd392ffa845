import json

import pytest

from vehicle_safety.config import SeverityRules
from vehicle_safety.data_models import ComplaintRecord, RecallRecord, SeverityTier
from vehicle_safety.severity import (
    classify_complaint,
    classify_complaints,
    classify_recall,
    classify_recalls,
)


def _recall(consequence: str) -> RecallRecord:
    return RecallRecord(
        recall_id="12V000000",
        component="",
        summary="",
        consequence=consequence,
        remedy="",
        date_initiated="",
    )


def _complaint(summary: str, crash: bool = False, fire: bool = False) -> ComplaintRecord:
    return ComplaintRecord(
        odi_number="11000001",
        component="",
        summary=summary,
        date_of_incident="",
        crash_indicator=crash,
        fire_indicator=fire,
    )


# ── Tier Ordering ────────────────────────────────────────────────────


def test_tiers_are_totally_ordered():
    assert SeverityTier.HIGH > SeverityTier.MEDIUM > SeverityTier.LOW
    assert sorted([SeverityTier.MEDIUM, SeverityTier.HIGH, SeverityTier.LOW]) == [
        SeverityTier.LOW,
        SeverityTier.MEDIUM,
        SeverityTier.HIGH,
    ]
    assert max(SeverityTier) is SeverityTier.HIGH


# ── Recalls ──────────────────────────────────────────────────────────


def test_recall_steering_crash_is_high():
    assert classify_recall(_recall("Loss of steering control leading to crash")) is SeverityTier.HIGH


def test_recall_warning_light_is_low():
    assert classify_recall(_recall("Dashboard warning light illuminates")) is SeverityTier.LOW


def test_recall_high_beats_low_keywords():
    # "warning" and "light" are Low keywords, "brake" is High.
    assert classify_recall(_recall("Brake warning light may not illuminate")) is SeverityTier.HIGH


def test_recall_without_keywords_is_medium():
    assert classify_recall(_recall("The label may peel off.")) is SeverityTier.MEDIUM
    assert classify_recall(_recall("")) is SeverityTier.MEDIUM


def test_recall_matching_is_case_insensitive_substring():
    assert classify_recall(_recall("AIRBAGS may not deploy")) is SeverityTier.HIGH
    assert classify_recall(_recall("Increased risk of FIRE")) is SeverityTier.HIGH


# ── Complaints ───────────────────────────────────────────────────────


def test_complaint_crash_indicator_overrides_text():
    record = _complaint("minor cosmetic issue", crash=True)
    assert classify_complaint(record) is SeverityTier.HIGH


def test_complaint_fire_indicator_overrides_text():
    assert classify_complaint(_complaint("cosmetic scratch", fire=True)) is SeverityTier.HIGH


@pytest.mark.parametrize(
    "summary,expected",
    [
        ("Vehicle was in an accident after stalling", SeverityTier.HIGH),
        ("Sudden brake failure on the highway", SeverityTier.HIGH),
        ("airbag light on, airbag did not deploy", SeverityTier.HIGH),
        ("Loud noise from rear axle", SeverityTier.LOW),
        ("Warning light flickers at startup", SeverityTier.LOW),
        ("squeaky brakes", SeverityTier.LOW),
        ("Engine stalls when idling", SeverityTier.MEDIUM),
    ],
)
def test_complaint_summary_keywords(summary, expected):
    assert classify_complaint(_complaint(summary)) is expected


def test_complaint_high_phrase_beats_low_phrase():
    assert classify_complaint(_complaint("minor vibration then explosion")) is SeverityTier.HIGH


def test_complaint_brake_alone_is_not_high():
    # Only the phrase "brake failure" is a High keyword for complaints.
    assert classify_complaint(_complaint("brakes feel soft")) is SeverityTier.MEDIUM


# ── Batch helpers and configurable rules ─────────────────────────────


def test_classify_batches_return_new_records():
    recalls = [_recall("crash"), _recall("noise")]
    classified = classify_recalls(recalls)
    assert [r.severity for r in classified] == [SeverityTier.HIGH, SeverityTier.LOW]
    assert all(r.severity is None for r in recalls)

    complaints = classify_complaints([_complaint("rattle", crash=True), _complaint("cosmetic")])
    assert [c.severity for c in complaints] == [SeverityTier.HIGH, SeverityTier.LOW]


def test_rules_can_be_extended(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({"recall_high_keywords": ["Rollaway"], "recall_low_keywords": ["label"]}))
    rules = SeverityRules.from_file(path)
    assert rules.recall_high_keywords == ("rollaway",)
    assert classify_recall(_recall("Vehicle rollaway risk"), rules) is SeverityTier.HIGH
    assert classify_recall(_recall("label peels"), rules) is SeverityTier.LOW
    # Untouched sets keep their defaults.
    assert "explosion" in rules.complaint_high_keywords


def test_rules_reject_unknown_keys():
    with pytest.raises(ValueError):
        SeverityRules.from_mapping({"recall_critical_keywords": ["death"]})


def test_rules_reject_bare_string():
    with pytest.raises(ValueError):
        SeverityRules.from_mapping({"recall_high_keywords": "crash"})
