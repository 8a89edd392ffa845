from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any

import httpx

from safety_service.cache import SafetyCache
from vehicle_safety.data_models import VehicleIdentity
from vehicle_safety.errors import MalformedUpstreamPayload, UpstreamUnavailable, VinNotDecoded
from vehicle_safety.identity import resolve, validate_vin
from vehicle_safety.normalizer import lookup

logger = logging.getLogger(__name__)

VIN_DECODER_FEED = "vin_decoder"

# Position 10 model-year characters; the cycle repeats every 30 years from 1980.
_YEAR_CODES = "ABCDEFGHJKLMNPRSTVWXY123456789"


# vPIC model names that the recall and complaint feeds know by another name.
MODEL_ALIASES: dict[str, str] = {
    "golf gti": "Golf",
    "wrangler": "Wrangler",
    "f-150": "F-150",
    "f-250": "F-250",
    "f-350": "F-350",
}

_MODEL_SPLIT_RE = re.compile(r"[\s\-,]")


def feed_model_name(model: str) -> str:
    """Reduce a vPIC model name ("Golf GTI", "Wrangler Unlimited") to the name the feeds index."""
    lowered = model.lower()
    for key, value in MODEL_ALIASES.items():
        if key in lowered:
            return value
    return _MODEL_SPLIT_RE.split(model.strip())[0] or model.strip()


def model_year_from_vin(vin: str, current_year: int | None = None) -> int:
    """Most recent model year the VIN's 10th character can denote, 0 if unknown."""
    if len(vin) < 10 or vin[9] not in _YEAR_CODES:
        return 0
    latest = (current_year or date.today().year) + 1
    year = 1980 + _YEAR_CODES.index(vin[9])
    while year + 30 <= latest:
        year += 30
    return year


class VinDecoder:
    def __init__(
        self,
        cache: SafetyCache,
        base_url: str,
        ttl_seconds: int,
        *,
        user_agent: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.ttl_seconds = ttl_seconds
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def decode(self, raw_vin: str) -> VehicleIdentity:
        vin = validate_vin(raw_vin)
        cache_key = f"vin_decode:{vin}"
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        row = await self._request(vin)
        error_code = str(lookup(row, ("ErrorCode", "errorCode"))).strip()
        if error_code and error_code != "0":
            error_text = str(lookup(row, ("ErrorText", "errorText"))).strip()
            logger.info("vPIC rejected %s with code %s", vin, error_code)
            raise VinNotDecoded(error_text or f"VIN decoder error {error_code} for {vin}")

        make = str(lookup(row, ("Make", "make"))).strip()
        model = str(lookup(row, ("Model", "model"))).strip()
        if not make or not model:
            raise VinNotDecoded(f"No vehicle data found for VIN {vin}")

        raw_year: Any = str(lookup(row, ("ModelYear", "modelYear"))).strip()
        if not raw_year:
            raw_year = model_year_from_vin(vin)
            if not raw_year:
                raise VinNotDecoded(f"Could not determine model year for VIN {vin}")
            logger.info("vPIC omitted model year for %s, using VIN year code %s", vin, raw_year)

        identity = resolve(make, feed_model_name(model), raw_year, vin)
        await self.cache.put(cache_key, identity, ttl_seconds=self.ttl_seconds)
        return identity

    async def _request(self, vin: str) -> dict[str, Any]:
        url = f"{self.base_url}/DecodeVinValues/{vin}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                resp = await client.get(
                    url, params={"format": "json"}, headers={"User-Agent": self.user_agent, "Accept": "application/json"}
                )
        except httpx.HTTPError as exc:
            logger.warning("VIN decode failed for %s: %s", vin, exc)
            raise UpstreamUnavailable(VIN_DECODER_FEED, f"request failed: {exc.__class__.__name__}") from exc
        if not resp.is_success:
            raise UpstreamUnavailable(VIN_DECODER_FEED, f"HTTP {resp.status_code}", status=resp.status_code)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise MalformedUpstreamPayload(VIN_DECODER_FEED, "response body is not valid JSON") from exc
        rows = lookup(payload, ("Results", "results"), default=[]) if isinstance(payload, dict) else []
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            raise VinNotDecoded(f"No vehicle data found for VIN {vin}")
        return rows[0]
