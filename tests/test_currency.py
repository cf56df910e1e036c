"""
Tests for the exchange-rate cache, provider client and currency formatting
"""
import asyncio
import pytest
from decimal import Decimal

import httpx
from redis.exceptions import ConnectionError as RedisConnectionError

from lendcircle.core.exceptions import RateProviderUnavailable, ValidationError
from lendcircle.modules.currency.cache import (
    ExchangeRateCache, InMemoryRateStore, LayeredRateStore, RateEntry, RedisRateStore
)
from lendcircle.modules.currency.rates import (
    FALLBACK_RATES, ExchangeRateProvider, fallback_rates, format_currency, get_currency_symbol
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def failing_transport(status_code: int = 500) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(status_code, json={"error": "down"}))


def make_cache(transport, clock=None, ttl=3600, store=None) -> ExchangeRateCache:
    provider = ExchangeRateProvider(base_url="https://rates.test/latest", transport=transport)
    return ExchangeRateCache(provider=provider, store=store or InMemoryRateStore(), ttl_seconds=ttl, clock=clock or FakeClock())


class FakeRedis:
    def __init__(self):
        self.values = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self.values[key] = value


def factory_for(redis):
    async def factory():
        return redis
    return factory


async def redis_down():
    raise RedisConnectionError("Connection refused")


class TestFormatting:
    @pytest.mark.unit
    def test_two_decimals(self):
        assert format_currency(Decimal("1234.5"), "USD") == "$1,234.50"
        assert format_currency(Decimal("99"), "EUR") == "€99.00"

    @pytest.mark.unit
    def test_yen_has_no_decimals(self):
        assert format_currency(Decimal("1234.5"), "JPY") == "¥1,235"

    @pytest.mark.unit
    def test_unknown_currency_uses_code(self):
        assert get_currency_symbol("XYZ") == "XYZ"
        assert format_currency(Decimal("10"), "XYZ") == "XYZ10.00"


class TestFallbackRates:
    @pytest.mark.unit
    def test_usd_table(self):
        assert fallback_rates("usd") == FALLBACK_RATES

    @pytest.mark.unit
    def test_cross_rates(self):
        rates = fallback_rates("EUR")
        assert rates["EUR"] == Decimal("1.000000")
        assert rates["USD"] == Decimal("1.086957")

    @pytest.mark.unit
    def test_unsupported_base(self):
        with pytest.raises(ValidationError):
            fallback_rates("XYZ")


class TestProvider:
    @pytest.mark.unit
    async def test_fetch(self, rate_transport, rate_requests):
        provider = ExchangeRateProvider(base_url="https://rates.test/latest/", transport=rate_transport)

        rates = await provider.fetch("usd")

        assert rates["EUR"] == Decimal("0.9")
        assert rate_requests == ["https://rates.test/latest/USD"]

    @pytest.mark.unit
    async def test_error_status(self):
        provider = ExchangeRateProvider(base_url="https://rates.test/latest", transport=failing_transport(503))

        with pytest.raises(RateProviderUnavailable):
            await provider.fetch("USD")

    @pytest.mark.unit
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        provider = ExchangeRateProvider(base_url="https://rates.test/latest", transport=httpx.MockTransport(handler))

        with pytest.raises(RateProviderUnavailable, match="Timed out"):
            await provider.fetch("USD")

    @pytest.mark.unit
    async def test_missing_rates(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"result": "ok"}))
        provider = ExchangeRateProvider(base_url="https://rates.test/latest", transport=transport)

        with pytest.raises(RateProviderUnavailable):
            await provider.fetch("USD")


class TestExchangeRateCache:
    @pytest.mark.unit
    async def test_fresh_entry_is_served_from_cache(self, rate_transport, rate_requests):
        cache = make_cache(rate_transport)

        await cache.get_rates("USD")
        await cache.get_rates("USD")

        assert len(rate_requests) == 1

    @pytest.mark.unit
    async def test_stale_entry_served_while_refreshing(self, rate_requests):
        responses = iter([{"rates": {"EUR": 0.9}}, {"rates": {"EUR": 0.95}}])

        def handler(request):
            rate_requests.append(str(request.url))
            return httpx.Response(200, json=next(responses))

        clock = FakeClock()
        cache = make_cache(httpx.MockTransport(handler), clock=clock)
        await cache.get_rates("USD")

        clock.now += 3601
        stale = await cache.get_rates("USD")
        assert stale["EUR"] == Decimal("0.9")

        await asyncio.gather(*cache.pending_refreshes)
        fresh = await cache.get_rates("USD")
        assert fresh["EUR"] == Decimal("0.95")
        assert len(rate_requests) == 2

    @pytest.mark.unit
    async def test_one_background_refresh_per_base(self, rate_transport):
        clock = FakeClock()
        cache = make_cache(rate_transport, clock=clock)
        await cache.store.set(RateEntry(base="USD", rates={"EUR": Decimal("0.9")}, fetched_at=clock.now - 7200))

        await cache.get_rates("USD")
        await cache.get_rates("USD")

        assert len(cache.pending_refreshes) == 1
        await asyncio.gather(*cache.pending_refreshes)
        assert cache.pending_refreshes == []

    @pytest.mark.unit
    async def test_provider_failure_uses_fallback(self):
        cache = make_cache(failing_transport(500))

        rates = await cache.get_rates("USD")

        assert rates == FALLBACK_RATES
        assert await cache.store.get("USD") is None

    @pytest.mark.unit
    async def test_failed_refresh_keeps_stale_entry(self):
        clock = FakeClock()
        cache = make_cache(failing_transport(502), clock=clock)
        await cache.store.set(RateEntry(base="USD", rates={"EUR": Decimal("0.5")}, fetched_at=clock.now - 7200))

        rates = await cache.get_rates("USD")
        await asyncio.gather(*cache.pending_refreshes)

        assert rates["EUR"] == Decimal("0.5")
        assert (await cache.store.get("USD")).rates["EUR"] == Decimal("0.5")

    @pytest.mark.unit
    async def test_convert(self, rate_cache):
        assert await rate_cache.convert(Decimal("100.00"), "USD", "EUR") == Decimal("90.00")
        assert await rate_cache.convert(Decimal("100.00"), "usd", "jpy") == Decimal("15000.00")
        assert await rate_cache.convert(Decimal("42.10"), "EUR", "EUR") == Decimal("42.10")

    @pytest.mark.unit
    async def test_convert_unknown_target(self, rate_cache):
        with pytest.raises(ValidationError):
            await rate_cache.convert(Decimal("1"), "USD", "CHF")

    @pytest.mark.unit
    async def test_periodic_refresh_runs_until_cancelled(self, rate_transport, rate_requests):
        cache = make_cache(rate_transport)

        task = asyncio.create_task(cache.run_periodic_refresh(["USD", "EUR"], interval_seconds=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(rate_requests) >= 2
        assert await cache.store.get("EUR") is not None


class TestRateStores:
    @pytest.mark.unit
    async def test_redis_round_trip(self):
        redis = FakeRedis()
        store = RedisRateStore(redis_factory=factory_for(redis))

        await store.set(RateEntry(base="USD", rates={"EUR": Decimal("0.9")}, fetched_at=123.0))

        entry = await store.get("USD")
        assert entry.rates == {"EUR": Decimal("0.9")}
        assert entry.fetched_at == 123.0

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", ["not json", '{"base": "USD"}', '{"base": "USD", "rates": {"EUR": "x"}, "fetched_at": 1}'])
    async def test_malformed_redis_entry_is_a_miss(self, raw):
        redis = FakeRedis()
        redis.values["lendcircle:rates:USD"] = raw
        store = RedisRateStore(redis_factory=factory_for(redis))

        assert await store.get("USD") is None

    @pytest.mark.unit
    async def test_redis_outage_is_a_miss(self):
        store = RedisRateStore(redis_factory=redis_down)

        await store.set(RateEntry(base="USD", rates={"EUR": Decimal("0.9")}, fetched_at=1.0))

        assert await store.get("USD") is None

    @pytest.mark.unit
    async def test_redis_outage_keeps_caching_in_process(self, rate_transport, rate_requests):
        store = LayeredRateStore(InMemoryRateStore(), RedisRateStore(redis_factory=redis_down))
        cache = make_cache(rate_transport, store=store)

        for _ in range(5):
            assert await cache.convert("1", "USD", "EUR") == Decimal("0.90")

        assert len(rate_requests) == 1

    @pytest.mark.unit
    async def test_newer_shared_entry_wins(self):
        local = InMemoryRateStore()
        shared = InMemoryRateStore()
        store = LayeredRateStore(local, shared)
        await local.set(RateEntry(base="USD", rates={"EUR": Decimal("0.9")}, fetched_at=100.0))
        await shared.set(RateEntry(base="USD", rates={"EUR": Decimal("0.95")}, fetched_at=200.0))

        entry = await store.get("USD")

        assert entry.rates["EUR"] == Decimal("0.95")
        assert (await local.get("USD")).fetched_at == 200.0
