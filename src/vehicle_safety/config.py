from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping


@dataclass(frozen=True)
class SeverityRules:
    """Keyword sets driving severity classification.

    Matching is a case-insensitive substring test. High keywords are always
    evaluated before Low keywords.
    """

    recall_high_keywords: tuple[str, ...] = ("crash", "fire", "death", "injury", "brake", "steering", "airbag")
    recall_low_keywords: tuple[str, ...] = ("warning", "light", "noise", "vibration", "minor")
    complaint_high_keywords: tuple[str, ...] = (
        "accident",
        "injury",
        "death",
        "brake failure",
        "steering loss",
        "airbag",
        "fire",
        "explosion",
    )
    complaint_low_keywords: tuple[str, ...] = ("noise", "vibration", "warning light", "minor", "cosmetic", "squeak")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SeverityRules":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown severity rule keys: {sorted(unknown)}")
        values: dict[str, tuple[str, ...]] = {}
        for name, words in data.items():
            if isinstance(words, str) or not all(isinstance(w, str) for w in words):
                raise ValueError(f"{name} must be a list of strings")
            values[name] = tuple(w.strip().lower() for w in words if w.strip())
        return cls(**values)

    @classmethod
    def from_file(cls, path: str | Path) -> "SeverityRules":
        with open(path, encoding="utf-8") as fh:
            return cls.from_mapping(json.load(fh))


@dataclass(frozen=True)
class AggregationConfig:
    max_recalls: int = 50
    max_complaints: int = 100
    cache_ttl_seconds: int = 86_400
    # Results with feed warnings; lower this to pick up a recovered feed sooner.
    partial_cache_ttl_seconds: int = 86_400


DEFAULT_RULES = SeverityRules()
