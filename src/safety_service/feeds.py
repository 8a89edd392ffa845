from __future__ import annotations

import logging
import time

import httpx

from safety_service.logging_config import log_extra
from vehicle_safety.data_models import RawFeedPayload, VehicleIdentity
from vehicle_safety.errors import MalformedUpstreamPayload, UpstreamUnavailable

logger = logging.getLogger(__name__)

RECALLS_FEED = "recalls"
COMPLAINTS_FEED = "complaints"


class FeedClient:
    """One bounded GET against an NHTSA by-vehicle endpoint.

    No retries: a timeout, transport error or non-2xx status becomes
    ``UpstreamUnavailable`` and the caller decides what to do with it.
    """

    feed = "feed"

    def __init__(
        self,
        url: str,
        *,
        user_agent: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def _fetch(self, identity: VehicleIdentity) -> RawFeedPayload:
        params = {"make": identity.make, "model": identity.model, "modelYear": str(identity.year)}
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                resp = await client.get(self.url, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("%s feed timed out after %.1fs", self.feed, self.timeout_seconds)
            raise UpstreamUnavailable(self.feed, "request timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s feed request failed: %s", self.feed, exc)
            raise UpstreamUnavailable(self.feed, f"request failed: {exc.__class__.__name__}") from exc

        elapsed_ms = round((time.monotonic() - t0) * 1000, 1)
        if not resp.is_success:
            logger.warning(
                "%s feed returned HTTP %d",
                self.feed,
                resp.status_code,
                extra=log_extra(feed=self.feed, status=resp.status_code, elapsed_ms=elapsed_ms),
            )
            raise UpstreamUnavailable(self.feed, f"HTTP {resp.status_code}", status=resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedUpstreamPayload(self.feed, "response body is not valid JSON") from exc
        if not isinstance(data, dict):
            raise MalformedUpstreamPayload(self.feed, f"expected a JSON object, got {type(data).__name__}")

        logger.debug("%s feed answered", self.feed, extra=log_extra(feed=self.feed, elapsed_ms=elapsed_ms))
        return data


class RecallFeedClient(FeedClient):
    feed = RECALLS_FEED

    async def fetch_recalls(self, identity: VehicleIdentity) -> RawFeedPayload:
        return await self._fetch(identity)


class ComplaintFeedClient(FeedClient):
    feed = COMPLAINTS_FEED

    async def fetch_complaints(self, identity: VehicleIdentity) -> RawFeedPayload:
        return await self._fetch(identity)
