import asyncio
import base64

import httpx
import pytest

from recon.data_models import VehicleDescriptor
from recon_service.marketplace import MarketplacePartsClient, compatibility_filter, reduce_prices
from recon_service.token_cache import OAuthTokenCache

TOKEN_URL = "https://auth.test/identity/v1/oauth2/token"
BASE_URL = "https://api.test"


@pytest.fixture
def vehicle():
    return VehicleDescriptor(year=2019, make="Honda", model="Accord")


def _item(price, match="EXACT", url=None):
    return {
        "title": f"Part at {price}",
        "price": {"value": str(price), "currency": "USD"},
        "condition": "New",
        "itemWebUrl": url or f"https://www.ebay.com/itm/{price}",
        "compatibilityMatch": match,
    }


class FakeMarketplace:
    """Serves the token and search endpoints from canned data."""

    def __init__(self, items=None, search_status=200, token_status=200):
        self.items = items or []
        self.search_status = search_status
        self.token_status = token_status
        self.token_requests: list[httpx.Request] = []
        self.search_requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/token"):
            self.token_requests.append(request)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 7200})
        self.search_requests.append(request)
        if self.search_status != 200:
            return httpx.Response(self.search_status, json={"errors": []})
        return httpx.Response(200, json={"total": len(self.items), "itemSummaries": self.items})

    def client(self, **kwargs) -> MarketplacePartsClient:
        return MarketplacePartsClient(
            "client-id",
            "client-secret",
            base_url=BASE_URL,
            token_url=TOKEN_URL,
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )


# ── Token cache ──────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_token_cache_single_refresh_under_concurrency():
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return f"tok-{calls}", 3600

    cache = OAuthTokenCache(fetch)
    tokens = await asyncio.gather(*(cache.get_token() for _ in range(10)))
    assert calls == 1
    assert set(tokens) == {"tok-1"}


@pytest.mark.asyncio
async def test_token_cache_refreshes_inside_safety_margin():
    clock = FakeClock()
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        return f"tok-{calls}", 600

    cache = OAuthTokenCache(fetch, safety_margin_seconds=60.0, clock=clock)
    assert await cache.get_token() == "tok-1"
    clock.now += 539
    assert await cache.get_token() == "tok-1"
    clock.now += 1
    assert await cache.get_token() == "tok-2"


@pytest.mark.asyncio
async def test_token_cache_failure_leaves_cache_empty():
    attempts = 0

    async def fetch():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("identity endpoint down")
        return "tok-ok", 3600

    cache = OAuthTokenCache(fetch)
    with pytest.raises(RuntimeError):
        await cache.get_token()
    assert await cache.get_token() == "tok-ok"


@pytest.mark.asyncio
async def test_token_cache_failed_refresh_is_shared_by_waiters():
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.05)
        raise TimeoutError("identity endpoint timed out")

    cache = OAuthTokenCache(fetch)
    loop = asyncio.get_running_loop()
    started = loop.time()
    results = await asyncio.gather(*(cache.get_token() for _ in range(10)), return_exceptions=True)
    elapsed = loop.time() - started

    assert calls == 1
    assert all(isinstance(r, TimeoutError) for r in results)
    assert elapsed < 0.4


@pytest.mark.asyncio
async def test_token_cache_invalidate_forces_refresh():
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        return f"tok-{calls}", 3600

    cache = OAuthTokenCache(fetch)
    await cache.get_token()
    cache.invalidate()
    assert await cache.get_token() == "tok-2"


# ── Search ───────────────────────────────────────────────────────────


def test_reduce_prices_lower_middle_median():
    assert reduce_prices([150, 90, 130, 110, 100]) == (90, 110, 150)
    assert reduce_prices([40, 10, 30, 20]) == (10, 20, 40)


def test_compatibility_filter_includes_trim_when_known():
    base = VehicleDescriptor(year=2019, make="Honda", model="Accord")
    assert compatibility_filter(base) == "Year:2019;Make:Honda;Model:Accord"
    trimmed = VehicleDescriptor(year=2019, make="Honda", model="Accord", trim="Sport")
    assert compatibility_filter(trimmed).endswith(";Trim:Sport")


@pytest.mark.asyncio
async def test_disabled_client_makes_no_requests(vehicle):
    fake = FakeMarketplace(items=[_item(100)] * 5)
    client = MarketplacePartsClient("", "", transport=httpx.MockTransport(fake.handler))
    result = await client.search_part_prices("hood", vehicle)
    assert not client.enabled
    assert result.error == "marketplace_not_configured"
    assert fake.token_requests == [] and fake.search_requests == []


@pytest.mark.asyncio
async def test_search_summarizes_compatible_listings(vehicle):
    items = [
        _item(150),
        _item(90, match="COMPATIBLE", url="https://www.ebay.com/itm/cheapest"),
        _item(130),
        _item(110),
        _item(100),
        _item(5, match="POSSIBLY_COMPATIBLE"),
        _item(7, match="NOT_COMPATIBLE"),
        _item(300, match=None),
    ]
    fake = FakeMarketplace(items=items)
    result = await fake.client().search_part_prices("front bumper cover", vehicle)

    assert result.ok
    assert result.results_count == 5
    assert (result.price_low, result.price_median, result.price_high) == (90, 110, 150)
    assert [listing.price for listing in result.sample_listings] == [90, 100, 110, 130, 150]
    assert result.purchase_link == "https://www.ebay.com/itm/cheapest"


@pytest.mark.asyncio
async def test_search_keeps_five_cheapest_samples(vehicle):
    fake = FakeMarketplace(items=[_item(p) for p in (70, 20, 60, 10, 50, 30, 40)])
    result = await fake.client().search_part_prices("hood", vehicle)
    assert [listing.price for listing in result.sample_listings] == [10, 20, 30, 40, 50]
    assert result.price_median == 40


@pytest.mark.asyncio
async def test_search_sends_expected_request(vehicle):
    fake = FakeMarketplace(items=[_item(p) for p in (10, 20, 30)])
    await fake.client(page_size=15).search_part_prices("hood", vehicle)

    token_req = fake.token_requests[0]
    expected = base64.b64encode(b"client-id:client-secret").decode()
    assert token_req.headers["Authorization"] == f"Basic {expected}"
    assert b"grant_type=client_credentials" in token_req.content

    search_req = fake.search_requests[0]
    assert search_req.url.path == "/buy/browse/v1/item_summary/search"
    assert search_req.headers["Authorization"] == "Bearer tok-1"
    assert search_req.headers["X-EBAY-C-MARKETPLACE-ID"] == "EBAY_US"
    assert "zip=" in search_req.headers["X-EBAY-C-ENDUSERCTX"]
    params = search_req.url.params
    assert params["q"] == "hood"
    assert params["compatibility_filter"] == "Year:2019;Make:Honda;Model:Accord"
    assert params["category_ids"] == "6030"
    assert params["filter"] == "conditionIds:{1000}"
    assert params["sort"] == "price"
    assert params["limit"] == "15"


@pytest.mark.asyncio
async def test_token_is_reused_across_searches(vehicle):
    fake = FakeMarketplace(items=[_item(p) for p in (10, 20, 30)])
    client = fake.client()
    await client.search_part_prices("hood", vehicle)
    await client.search_part_prices("fender", vehicle)
    assert len(fake.token_requests) == 1
    assert len(fake.search_requests) == 2


@pytest.mark.asyncio
async def test_too_few_listings_is_insufficient(vehicle):
    fake = FakeMarketplace(items=[_item(100), _item(120), _item(5, match="NOT_COMPATIBLE")])
    result = await fake.client().search_part_prices("hood", vehicle)
    assert not result.ok
    assert result.error == "insufficient_listings"
    assert result.results_count == 2


@pytest.mark.asyncio
async def test_no_listings(vehicle):
    result = await FakeMarketplace(items=[]).client().search_part_prices("hood", vehicle)
    assert result.error == "no_listings"


@pytest.mark.asyncio
async def test_http_error_is_reported_not_raised(vehicle):
    fake = FakeMarketplace(items=[_item(100)] * 5, search_status=500)
    result = await fake.client().search_part_prices("hood", vehicle)
    assert not result.ok
    assert "500" in result.error


@pytest.mark.asyncio
async def test_token_failure_is_reported_not_raised(vehicle):
    fake = FakeMarketplace(items=[_item(100)] * 5, token_status=401)
    result = await fake.client().search_part_prices("hood", vehicle)
    assert not result.ok
    assert fake.search_requests == []


@pytest.mark.asyncio
async def test_unauthorized_search_drops_cached_token(vehicle):
    fake = FakeMarketplace(items=[_item(100)] * 5, search_status=401)
    client = fake.client()
    await client.search_part_prices("hood", vehicle)
    await client.search_part_prices("hood", vehicle)
    assert len(fake.token_requests) == 2


@pytest.mark.asyncio
async def test_timeout_is_reported_not_raised(vehicle):
    def handler(request):
        if request.url.path.endswith("/oauth2/token"):
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 7200})
        raise httpx.ReadTimeout("timed out", request=request)

    client = MarketplacePartsClient(
        "id", "secret", base_url=BASE_URL, token_url=TOKEN_URL, transport=httpx.MockTransport(handler)
    )
    result = await client.search_part_prices("hood", vehicle)
    assert not result.ok
    assert result.error
