from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

from safety_service.cache import SafetyCache
from safety_service.feeds import ComplaintFeedClient, RecallFeedClient
from safety_service.logging_config import log_extra
from vehicle_safety.config import DEFAULT_RULES, AggregationConfig, SeverityRules
from vehicle_safety.data_models import (
    AggregateResult,
    CacheState,
    ComplaintRecord,
    FeedWarning,
    RawFeedPayload,
    RecallRecord,
    SafetyStatistics,
    SeverityTier,
    TierCounts,
    VehicleIdentity,
)
from vehicle_safety.errors import AllFeedsUnavailable, Cancelled, MalformedUpstreamPayload, UpstreamUnavailable
from vehicle_safety.normalizer import normalize_complaints, normalize_recalls, sort_key_date
from vehicle_safety.severity import classify_complaints, classify_recalls

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedOutcome:
    feed: str
    records: tuple[Any, ...] = ()
    error: UpstreamUnavailable | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class _InFlight:
    task: asyncio.Task
    waiters: int = 0


def _tier_counts(records: Sequence[RecallRecord] | Sequence[ComplaintRecord]) -> TierCounts:
    tiers = [r.severity for r in records]
    return TierCounts(
        total=len(tiers),
        high=tiers.count(SeverityTier.HIGH),
        medium=tiers.count(SeverityTier.MEDIUM),
        low=tiers.count(SeverityTier.LOW),
    )


def compute_statistics(recalls: Sequence[RecallRecord], complaints: Sequence[ComplaintRecord]) -> SafetyStatistics:
    return SafetyStatistics(
        recalls=_tier_counts(recalls),
        complaints=_tier_counts(complaints),
        crash_count=sum(1 for c in complaints if c.crash_indicator),
        fire_count=sum(1 for c in complaints if c.fire_indicator),
    )


def rank_complaints(complaints: Sequence[ComplaintRecord]) -> list[ComplaintRecord]:
    """Most severe first; within a tier, most recent incident first."""
    return sorted(
        complaints,
        key=lambda c: (c.severity.rank if c.severity else 0, sort_key_date(c.date_of_incident)),
        reverse=True,
    )


class SafetyAggregator:
    """Public entry point: cached, severity-ranked safety data for one vehicle.

    On a cache miss both feeds are queried concurrently and joined; a failure
    in one feed degrades to an empty list plus a warning. Concurrent misses
    for the same identity share one upstream fetch.
    """

    def __init__(
        self,
        recall_client: RecallFeedClient,
        complaint_client: ComplaintFeedClient,
        cache: SafetyCache,
        *,
        config: AggregationConfig | None = None,
        rules: SeverityRules = DEFAULT_RULES,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.recall_client = recall_client
        self.complaint_client = complaint_client
        self.cache = cache
        self.config = config or AggregationConfig()
        self.rules = rules
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._inflight: dict[str, _InFlight] = {}

    async def get_safety_intelligence(
        self, identity: VehicleIdentity, *, timeout: float | None = None
    ) -> AggregateResult:
        key = identity.cache_key
        cached: AggregateResult | None = await self.cache.get(key)
        if cached is not None:
            logger.info("safety cache hit", extra=log_extra(key=key))
            # Entries are shared per make/model/year; the VIN belongs to this caller only.
            return replace(cached, cache_state=CacheState.HIT, identity=identity)

        entry = self._inflight.get(key)
        if entry is None:
            logger.info("safety cache miss", extra=log_extra(key=key))
            entry = _InFlight(task=asyncio.create_task(self._fetch_and_store(identity)))
            self._inflight[key] = entry
            entry.task.add_done_callback(lambda _t, k=key, e=entry: self._forget(k, e))
        else:
            logger.debug("joining in-flight fetch", extra=log_extra(key=key))

        entry.waiters += 1
        waiter = asyncio.shield(entry.task)
        try:
            done, _ = await asyncio.wait({waiter}, timeout=timeout)
            if not done:
                logger.warning("safety lookup deadline exceeded", extra=log_extra(key=key, timeout=timeout))
                raise Cancelled(key, "deadline exceeded")
            result: AggregateResult = waiter.result()
            return replace(result, identity=identity)
        finally:
            if not waiter.done():
                waiter.cancel()
            entry.waiters -= 1
            if entry.waiters == 0 and not entry.task.done():
                # Nobody is left to receive the result: abandon both feed calls.
                # Unregister first so a new caller starts a fresh fetch instead of
                # joining one that is being torn down.
                logger.info("abandoning fetch, no waiters left", extra=log_extra(key=key))
                self._forget(key, entry)
                entry.task.cancel()

    def _forget(self, key: str, entry: _InFlight) -> None:
        if self._inflight.get(key) is entry:
            del self._inflight[key]

    async def _fetch_and_store(self, identity: VehicleIdentity) -> AggregateResult:
        recall_outcome, complaint_outcome = await asyncio.gather(
            self._collect(self.recall_client.feed, self.recall_client.fetch_recalls, identity, self._build_recalls),
            self._collect(
                self.complaint_client.feed, self.complaint_client.fetch_complaints, identity, self._build_complaints
            ),
        )

        failures = [o.error for o in (recall_outcome, complaint_outcome) if o.error is not None]
        if len(failures) == 2:
            logger.error("all safety feeds unavailable", extra=log_extra(key=identity.cache_key))
            raise AllFeedsUnavailable(failures)

        recalls: list[RecallRecord] = list(recall_outcome.records)
        complaints = rank_complaints(complaint_outcome.records)
        result = AggregateResult(
            identity=identity,
            recalls=tuple(recalls[: self.config.max_recalls]),
            complaints=tuple(complaints[: self.config.max_complaints]),
            statistics=compute_statistics(recalls, complaints),
            retrieved_at=self._now(),
            cache_state=CacheState.MISS,
            warnings=tuple(FeedWarning(feed=f.feed or "", message=f.message, status=f.status) for f in failures),
        )

        ttl = self.config.partial_cache_ttl_seconds if failures else self.config.cache_ttl_seconds
        if ttl > 0:
            await self.cache.put(identity.cache_key, result, ttl_seconds=ttl)
        logger.info(
            "safety intelligence assembled",
            extra=log_extra(
                key=identity.cache_key,
                recalls=result.recall_count,
                complaints=result.statistics.complaints.total,
                partial=bool(failures),
                ttl_seconds=ttl,
            ),
        )
        return result

    async def _collect(
        self,
        feed: str,
        fetch: Callable[[VehicleIdentity], Awaitable[RawFeedPayload]],
        identity: VehicleIdentity,
        build: Callable[[RawFeedPayload], list[Any]],
    ) -> FeedOutcome:
        try:
            raw = await fetch(identity)
        except UpstreamUnavailable as exc:
            logger.warning("feed degraded: %s", exc, extra=log_extra(feed=feed, status=exc.status))
            return FeedOutcome(feed=feed, error=exc)

        try:
            records = build(raw)
        except Exception as exc:
            logger.exception("failed to normalize %s payload", feed)
            return FeedOutcome(feed=feed, error=MalformedUpstreamPayload(feed, f"could not normalize payload: {exc}"))
        return FeedOutcome(feed=feed, records=tuple(records))

    def _build_recalls(self, raw: RawFeedPayload) -> list[RecallRecord]:
        return classify_recalls(normalize_recalls(raw), self.rules)

    def _build_complaints(self, raw: RawFeedPayload) -> list[ComplaintRecord]:
        return classify_complaints(normalize_complaints(raw), self.rules)
