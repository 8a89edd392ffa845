from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


RawFeedPayload = dict[str, Any]


class SeverityTier(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, SeverityTier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, SeverityTier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, SeverityTier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, SeverityTier):
            return NotImplemented
        return self.rank >= other.rank


_TIER_RANK = {SeverityTier.LOW: 1, SeverityTier.MEDIUM: 2, SeverityTier.HIGH: 3}


class CacheState(str, Enum):
    HIT = "hit"
    MISS = "miss"


@dataclass(frozen=True)
class VehicleIdentity:
    make: str
    model: str
    year: int
    vin: str | None = None

    @property
    def cache_key(self) -> str:
        return f"{self.make}|{self.model}|{self.year}".lower()


@dataclass(frozen=True)
class RecallRecord:
    recall_id: str
    component: str
    summary: str
    consequence: str
    remedy: str
    date_initiated: str
    manufacturer: str = ""
    park_it: bool = False
    park_outside: bool = False
    severity: SeverityTier | None = None


@dataclass(frozen=True)
class ComplaintRecord:
    odi_number: str
    component: str
    summary: str
    date_of_incident: str
    crash_indicator: bool
    fire_indicator: bool
    injuries: int = 0
    deaths: int = 0
    vehicle_speed: int = 0
    severity: SeverityTier | None = None


@dataclass(frozen=True)
class TierCounts:
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


@dataclass(frozen=True)
class SafetyStatistics:
    recalls: TierCounts = field(default_factory=TierCounts)
    complaints: TierCounts = field(default_factory=TierCounts)
    crash_count: int = 0
    fire_count: int = 0

    @property
    def total(self) -> int:
        return self.recalls.total + self.complaints.total


@dataclass(frozen=True)
class FeedWarning:
    feed: str
    message: str
    status: int | None = None


@dataclass(frozen=True)
class AggregateResult:
    identity: VehicleIdentity
    recalls: tuple[RecallRecord, ...]
    complaints: tuple[ComplaintRecord, ...]
    statistics: SafetyStatistics
    retrieved_at: datetime
    cache_state: CacheState
    warnings: tuple[FeedWarning, ...] = ()

    @property
    def recall_count(self) -> int:
        return self.statistics.recalls.total

    @property
    def do_not_drive(self) -> bool:
        return any(r.park_it for r in self.recalls)

    @property
    def park_outside(self) -> bool:
        return any(r.park_outside for r in self.recalls)

    @property
    def is_partial(self) -> bool:
        return bool(self.warnings)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at
