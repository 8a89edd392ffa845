from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from dataclasses import asdict
from datetime import datetime
from typing import Any, Sequence

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from safety_service.aggregator import SafetyAggregator
from safety_service.cache import SafetyCache
from safety_service.feeds import ComplaintFeedClient, RecallFeedClient
from safety_service.logging_config import configure_logging, correlation_id, get_correlation_id
from safety_service.settings import ServiceSettings
from safety_service.vin import VinDecoder
from vehicle_safety.config import DEFAULT_RULES, AggregationConfig, SeverityRules
from vehicle_safety.data_models import AggregateResult, CacheState, SeverityTier, VehicleIdentity
from vehicle_safety.errors import (
    AllFeedsUnavailable,
    Cancelled,
    InvalidIdentity,
    SafetyIntelError,
    UpstreamUnavailable,
    VinNotDecoded,
)
from vehicle_safety.identity import resolve

logger = logging.getLogger(__name__)


# ── Response Models ─────────────────────────────────────────────────

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IdentityOut(_CamelModel):
    make: str
    model: str
    year: int
    vin: str | None = None


class RecallOut(_CamelModel):
    recall_id: str
    component: str
    summary: str
    consequence: str
    remedy: str
    date_initiated: str
    manufacturer: str
    park_it: bool
    park_outside: bool
    severity: SeverityTier


class ComplaintOut(_CamelModel):
    odi_number: str
    component: str
    summary: str
    date_of_incident: str
    crash_indicator: bool
    fire_indicator: bool
    injuries: int
    deaths: int
    vehicle_speed: int
    severity: SeverityTier


class RecallStatisticsOut(_CamelModel):
    total: int
    high: int
    medium: int
    low: int


class ComplaintStatisticsOut(RecallStatisticsOut):
    crash_count: int
    fire_count: int


class WarningOut(_CamelModel):
    feed: str
    message: str
    status: int | None = None


class SafetyDataOut(_CamelModel):
    identity: IdentityOut
    recall_count: int
    recalls: list[RecallOut]
    recall_statistics: RecallStatisticsOut
    complaint_statistics: ComplaintStatisticsOut
    complaints: list[ComplaintOut]
    retrieved_at: datetime
    cache_state: CacheState
    do_not_drive: bool
    park_outside: bool
    warnings: list[WarningOut]


class SafetyResponse(_CamelModel):
    success: bool
    data: SafetyDataOut | None = None
    error: str | None = None


class HealthResponse(BaseModel):
    status: str


def to_contract(result: AggregateResult) -> SafetyResponse:
    stats = result.statistics
    data = SafetyDataOut(
        identity=IdentityOut(
            make=result.identity.make,
            model=result.identity.model,
            year=result.identity.year,
            vin=result.identity.vin,
        ),
        recall_count=result.recall_count,
        recalls=[RecallOut(**asdict(r)) for r in result.recalls],
        recall_statistics=RecallStatisticsOut(**asdict(stats.recalls)),
        complaint_statistics=ComplaintStatisticsOut(
            total=stats.complaints.total,
            high=stats.complaints.high,
            medium=stats.complaints.medium,
            low=stats.complaints.low,
            crash_count=stats.crash_count,
            fire_count=stats.fire_count,
        ),
        complaints=[ComplaintOut(**asdict(c)) for c in result.complaints],
        retrieved_at=result.retrieved_at,
        cache_state=result.cache_state,
        do_not_drive=result.do_not_drive,
        park_outside=result.park_outside,
        warnings=[WarningOut(feed=w.feed, message=w.message, status=w.status) for w in result.warnings],
    )
    return SafetyResponse(success=True, data=data)


# ── Metrics ─────────────────────────────────────────────────────────

# Latency summaries cover the most recent samples only.
LATENCY_WINDOW = 10_000

_prom_counters: dict[str, int] = defaultdict(int)
_prom_histograms: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=LATENCY_WINDOW))


def _record_latency(name: str, seconds: float) -> None:
    _prom_histograms[name].append(seconds)
    _prom_counters[f"{name}_count"] += 1


def _percentile_ms(values: Sequence[float], q: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    return round(ordered[min(int(len(ordered) * q), len(ordered) - 1)] * 1000, 1)


def _prometheus_text() -> str:
    """Render metrics in Prometheus exposition format."""
    lines: list[str] = []
    for k, v in sorted(_prom_counters.items()):
        safe = k.replace(".", "_").replace("-", "_")
        lines.append(f"# TYPE safety_{safe} counter")
        lines.append(f"safety_{safe} {v}")

    for name, vals in sorted(_prom_histograms.items()):
        if not vals:
            continue
        safe = name.replace(".", "_").replace("-", "_")
        sorted_vals = sorted(vals)
        n = len(sorted_vals)
        lines.append(f"# TYPE safety_{safe}_seconds summary")
        for q in (0.5, 0.9, 0.95, 0.99):
            idx = min(int(n * q), n - 1)
            lines.append(f'safety_{safe}_seconds{{quantile="{q}"}} {sorted_vals[idx]:.6f}')
        lines.append(f"safety_{safe}_seconds_count {n}")
        lines.append(f"safety_{safe}_seconds_sum {sum(sorted_vals):.6f}")

    return "\n".join(lines) + "\n"


def _error_response(status_code: int, message: str) -> JSONResponse:
    body = SafetyResponse(success=False, error=message).model_dump(by_alias=True, exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


# ── App Factory ─────────────────────────────────────────────────────

def create_app(transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    settings = ServiceSettings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    rules = SeverityRules.from_file(settings.severity_rules_file) if settings.severity_rules_file else DEFAULT_RULES
    config = AggregationConfig(
        max_recalls=settings.max_recalls,
        max_complaints=settings.max_complaints,
        cache_ttl_seconds=settings.safety_cache_ttl_seconds,
        partial_cache_ttl_seconds=settings.partial_cache_ttl_seconds,
    )
    cache = SafetyCache(namespace="safety", max_entries=settings.cache_max_entries)
    vin_cache = SafetyCache(namespace="vin", max_entries=settings.cache_max_entries)

    client_opts: dict[str, Any] = {
        "user_agent": settings.feed_user_agent,
        "timeout_seconds": settings.feed_timeout_seconds,
        "transport": transport,
    }
    aggregator = SafetyAggregator(
        recall_client=RecallFeedClient(settings.recall_feed_url, **client_opts),
        complaint_client=ComplaintFeedClient(settings.complaint_feed_url, **client_opts),
        cache=cache,
        config=config,
        rules=rules,
    )
    vin_decoder = VinDecoder(
        cache=vin_cache,
        base_url=settings.vpic_base_url,
        ttl_seconds=settings.vin_cache_ttl_seconds,
        **client_opts,
    )
    request_timeout = settings.request_timeout_seconds or None

    app = FastAPI(title="Vehicle Safety Intelligence API", version="1.0.0")
    app.state.aggregator = aggregator
    app.state.vin_decoder = vin_decoder

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next: Any) -> Response:
        correlation_id.set(request.headers.get("X-Correlation-ID") or "")
        cid = get_correlation_id()
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response

    # ── Error mapping ───────────────────────────────────────────────

    @app.exception_handler(InvalidIdentity)
    async def invalid_identity_handler(_: Request, exc: InvalidIdentity) -> JSONResponse:
        _prom_counters["invalid_identity"] += 1
        return _error_response(400, exc.message)

    @app.exception_handler(VinNotDecoded)
    async def vin_not_decoded_handler(_: Request, exc: VinNotDecoded) -> JSONResponse:
        _prom_counters["vin_not_decoded"] += 1
        return _error_response(404, exc.message)

    @app.exception_handler(AllFeedsUnavailable)
    async def outage_handler(_: Request, exc: AllFeedsUnavailable) -> JSONResponse:
        _prom_counters["all_feeds_unavailable"] += 1
        return _error_response(503, "Safety data feeds are unavailable. Please try again later.")

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_handler(_: Request, exc: UpstreamUnavailable) -> JSONResponse:
        _prom_counters["upstream_unavailable"] += 1
        return _error_response(503, str(exc))

    @app.exception_handler(Cancelled)
    async def cancelled_handler(_: Request, exc: Cancelled) -> JSONResponse:
        _prom_counters["cancelled"] += 1
        return _error_response(504, "Safety data lookup timed out. Please try again later.")

    @app.exception_handler(SafetyIntelError)
    async def safety_error_handler(_: Request, exc: SafetyIntelError) -> JSONResponse:
        logger.error("unhandled safety error: %s", exc)
        return _error_response(500, "Failed to fetch safety data")

    async def _serve(identity: VehicleIdentity, response: Response, t0: float) -> SafetyResponse:
        result = await aggregator.get_safety_intelligence(identity, timeout=request_timeout)
        elapsed = time.monotonic() - t0
        _record_latency("safety_lookup", elapsed)
        _prom_counters[f"cache_{result.cache_state.value}"] += 1
        for w in result.warnings:
            _prom_counters[f"feed_degraded_{w.feed}"] += 1
        response.headers["X-Cache-Status"] = result.cache_state.value.upper()
        response.headers["X-Processing-Time"] = f"{elapsed * 1000:.0f}ms"
        return to_contract(result)

    # ── Safety Intelligence ─────────────────────────────────────────

    @app.get("/safety", response_model=SafetyResponse, response_model_exclude_none=True)
    async def safety_by_vehicle(
        response: Response,
        make: str | None = None,
        model: str | None = None,
        year: str | None = None,
        vin: str | None = None,
    ) -> SafetyResponse:
        t0 = time.monotonic()
        identity = resolve(make, model, year, vin)
        return await _serve(identity, response, t0)

    @app.get("/safety/vin/{vin}", response_model=SafetyResponse, response_model_exclude_none=True)
    async def safety_by_vin(vin: str, response: Response) -> SafetyResponse:
        t0 = time.monotonic()
        identity = await vin_decoder.decode(vin)
        return await _serve(identity, response, t0)

    # ── Health ──────────────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/healthz", response_model=HealthResponse)
    async def healthz() -> HealthResponse:
        return HealthResponse(status="ok")

    # ── Operational Endpoints ───────────────────────────────────────

    @app.get("/metrics")
    async def get_metrics() -> dict[str, Any]:
        latencies = _prom_histograms.get("safety_lookup", [])
        return {
            "counters": dict(_prom_counters),
            "cache_entries": len(cache),
            "safety_lookup_latency": {
                "count": len(latencies),
                "p50_ms": _percentile_ms(latencies, 0.5),
                "p95_ms": _percentile_ms(latencies, 0.95),
                "p99_ms": _percentile_ms(latencies, 0.99),
            },
        }

    @app.get("/metrics/prometheus")
    async def get_prometheus_metrics() -> Response:
        return Response(content=_prometheus_text(), media_type="text/plain; charset=utf-8")

    return app


app = create_app()
