import httpx
import pytest

from safety_service.cache import SafetyCache
from safety_service.vin import VIN_DECODER_FEED, VinDecoder, feed_model_name, model_year_from_vin
from vehicle_safety.data_models import VehicleIdentity
from vehicle_safety.errors import InvalidVin, MalformedUpstreamPayload, UpstreamUnavailable, VinNotDecoded

VIN = "1C4BJWDG5CL123456"
BASE_URL = "https://vpic.test/api/vehicles"


def _vpic_row(**overrides) -> dict:
    row = {"VIN": VIN, "Make": "JEEP", "Model": "Wrangler", "ModelYear": "2012", "ErrorCode": "0"}
    row.update(overrides)
    return row


def _decoder(handler, cache: SafetyCache | None = None) -> VinDecoder:
    return VinDecoder(
        cache=cache if cache is not None else SafetyCache(namespace="vin"),
        base_url=BASE_URL,
        ttl_seconds=2_592_000,
        user_agent="VehicleSafetyIntel/1.0",
        transport=httpx.MockTransport(handler),
    )


# ── Model Year Codes ─────────────────────────────────────────────────


def test_model_year_from_vin_picks_latest_cycle():
    assert model_year_from_vin(VIN, current_year=2026) == 2012
    assert model_year_from_vin("1C4BJWDG5AL123456", current_year=2026) == 2010
    assert model_year_from_vin("1C4BJWDG5YL123456", current_year=2026) == 2000


def test_model_year_from_vin_allows_next_model_year():
    # 'R' is 1994 or 2024; 'S' is 1995 or 2025 and only counts as 2025 once 2024 is current.
    assert model_year_from_vin("1C4BJWDG5RL123456", current_year=2026) == 2024
    assert model_year_from_vin("1C4BJWDG5SL123456", current_year=2023) == 1995
    assert model_year_from_vin("1C4BJWDG5SL123456", current_year=2024) == 2025


def test_model_year_from_vin_unknown_code():
    assert model_year_from_vin("1C4BJWDG50L123456", current_year=2026) == 0
    assert model_year_from_vin("short", current_year=2026) == 0


# ── Model Names ──────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "vpic_model, expected",
    [
        ("Golf GTI", "Golf"),
        ("Wrangler Unlimited", "Wrangler"),
        ("F-150 Lightning", "F-150"),
        ("Civic", "Civic"),
        ("Camry Hybrid", "Camry"),
        ("Accord, Sedan", "Accord"),
    ],
)
def test_feed_model_name(vpic_model, expected):
    assert feed_model_name(vpic_model) == expected


# ── Decoding ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_decode_returns_identity_with_vin():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"Count": 1, "Results": [_vpic_row()]})

    identity = await _decoder(handler).decode(VIN.lower())
    assert identity == VehicleIdentity(make="JEEP", model="WRANGLER", year=2012, vin=VIN)
    assert seen[0].url.path == f"/api/vehicles/DecodeVinValues/{VIN}"
    assert seen[0].url.params["format"] == "json"
    assert seen[0].headers["User-Agent"] == "VehicleSafetyIntel/1.0"


@pytest.mark.asyncio
async def test_decode_is_cached():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"Results": [_vpic_row()]})

    decoder = _decoder(handler)
    first = await decoder.decode(VIN)
    second = await decoder.decode(f"  {VIN.lower()} ")
    assert first == second
    assert calls == 1


@pytest.mark.asyncio
async def test_decode_falls_back_to_year_code():
    decoder = _decoder(lambda _: httpx.Response(200, json={"Results": [_vpic_row(ModelYear="")]}))
    identity = await decoder.decode(VIN)
    assert identity.year == 2012


@pytest.mark.asyncio
async def test_decode_without_make_is_not_decoded():
    decoder = _decoder(lambda _: httpx.Response(200, json={"Results": [_vpic_row(Make="", Model="")]}))
    with pytest.raises(VinNotDecoded):
        await decoder.decode(VIN)


@pytest.mark.asyncio
async def test_decode_with_no_rows_is_not_decoded():
    decoder = _decoder(lambda _: httpx.Response(200, json={"Count": 0, "Results": []}))
    with pytest.raises(VinNotDecoded):
        await decoder.decode(VIN)


@pytest.mark.asyncio
async def test_invalid_vin_never_reaches_network():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("network should not be called")

    with pytest.raises(InvalidVin):
        await _decoder(handler).decode("1C4BJWDG5CL12345O")


@pytest.mark.asyncio
async def test_decoder_http_failure():
    decoder = _decoder(lambda _: httpx.Response(500, text="boom"))
    with pytest.raises(UpstreamUnavailable) as excinfo:
        await decoder.decode(VIN)
    assert excinfo.value.feed == VIN_DECODER_FEED
    assert excinfo.value.status == 500


@pytest.mark.asyncio
async def test_decoder_connection_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamUnavailable):
        await _decoder(handler).decode(VIN)


@pytest.mark.asyncio
async def test_decoder_invalid_json():
    decoder = _decoder(lambda _: httpx.Response(200, text="not json"))
    with pytest.raises(MalformedUpstreamPayload):
        await decoder.decode(VIN)


@pytest.mark.asyncio
async def test_decode_queries_feeds_by_base_model_name():
    decoder = _decoder(lambda _: httpx.Response(200, json={"Results": [_vpic_row(Make="VOLKSWAGEN", Model="Golf GTI")]}))
    identity = await decoder.decode(VIN)
    assert identity.model == "GOLF"
    assert identity.make == "VOLKSWAGEN"


@pytest.mark.asyncio
async def test_decoder_error_code_is_not_decoded():
    row = _vpic_row(ErrorCode="1", ErrorText="1 - Check Digit (9th position) does not calculate properly")
    decoder = _decoder(lambda _: httpx.Response(200, json={"Results": [row]}))
    with pytest.raises(VinNotDecoded) as excinfo:
        await decoder.decode(VIN)
    assert "Check Digit" in excinfo.value.message


@pytest.mark.asyncio
async def test_undecodable_year_code_is_not_decoded():
    vin = "1C4BJWDG50L123456"
    decoder = _decoder(lambda _: httpx.Response(200, json={"Results": [_vpic_row(VIN=vin, ModelYear="")]}))
    with pytest.raises(VinNotDecoded):
        await decoder.decode(vin)
