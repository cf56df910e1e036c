"""
Exchange-rate cache.

Entries are keyed by base currency and considered fresh for a TTL (one hour by
default). A stale entry is still returned immediately while a single
background task per base refreshes it. Only a complete miss waits on the
provider, and if the provider fails the static fallback table is used without
being stored, so the next call tries the provider again. In production the
entries live in Redis with a per-process copy in front.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Optional

from redis.exceptions import RedisError

from lendcircle.core.config import settings
from lendcircle.core.database import get_redis
from lendcircle.core.exceptions import RateProviderUnavailable, ValidationError
from lendcircle.modules.currency.rates import ExchangeRateProvider, fallback_rates

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def apply_rate(amount, rate: Decimal) -> Decimal:
    """`amount` times `rate`, rounded to cents"""
    return (Decimal(str(amount)) * rate).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class RateEntry:
    base: str
    rates: Dict[str, Decimal]
    fetched_at: float


class InMemoryRateStore:
    """Process-local store"""

    def __init__(self):
        self._entries: Dict[str, RateEntry] = {}

    async def get(self, base: str) -> Optional[RateEntry]:
        return self._entries.get(base)

    async def set(self, entry: RateEntry) -> None:
        self._entries[entry.base] = entry


class RedisRateStore:
    """
    Store shared by all workers. Redis failures degrade to a cache miss.
    """

    def __init__(self, redis_factory=get_redis, prefix: str = "lendcircle:rates:", retention_seconds: int = 86400):
        self.redis_factory = redis_factory
        self.prefix = prefix
        self.retention_seconds = retention_seconds

    def _key(self, base: str) -> str:
        return f"{self.prefix}{base}"

    async def get(self, base: str) -> Optional[RateEntry]:
        try:
            redis = await self.redis_factory()
            raw = await redis.get(self._key(base))
        except RedisError as e:
            logger.warning(f"Redis unavailable reading exchange rates for {base}: {e}")
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return RateEntry(
                base=data["base"],
                rates={code: Decimal(rate) for code, rate in data["rates"].items()},
                fetched_at=float(data["fetched_at"])
            )
        except (ValueError, KeyError, TypeError, AttributeError, ArithmeticError) as e:
            logger.warning(f"Discarding malformed exchange rate entry for {base}: {e!r}")
            return None

    async def set(self, entry: RateEntry) -> None:
        payload = json.dumps({
            "base": entry.base,
            "rates": {code: str(rate) for code, rate in entry.rates.items()},
            "fetched_at": entry.fetched_at
        })
        try:
            redis = await self.redis_factory()
            await redis.set(self._key(entry.base), payload, ex=self.retention_seconds)
        except RedisError as e:
            logger.warning(f"Redis unavailable storing exchange rates for {entry.base}: {e}")


class LayeredRateStore:
    """
    Process-local store in front of a shared one.

    Reads return the newer of the two entries and writes go to both, so a
    shared-store outage degrades to per-process caching.
    """

    def __init__(self, local=None, shared=None):
        self.local = local if local is not None else InMemoryRateStore()
        self.shared = shared if shared is not None else RedisRateStore()

    async def get(self, base: str) -> Optional[RateEntry]:
        local = await self.local.get(base)
        shared = await self.shared.get(base)
        if local is None or (shared is not None and shared.fetched_at > local.fetched_at):
            if shared is not None:
                await self.local.set(shared)
            return shared
        return local

    async def set(self, entry: RateEntry) -> None:
        await self.local.set(entry)
        await self.shared.set(entry)


class ExchangeRateCache:
    def __init__(
        self,
        provider: Optional[ExchangeRateProvider] = None,
        store=None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time
    ):
        self.provider = provider or ExchangeRateProvider()
        self.store = store if store is not None else InMemoryRateStore()
        self.ttl_seconds = settings.EXCHANGE_RATE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self._refreshing: Dict[str, asyncio.Task] = {}

    @property
    def pending_refreshes(self) -> List[asyncio.Task]:
        return list(self._refreshing.values())

    def is_fresh(self, entry: RateEntry) -> bool:
        return self.clock() - entry.fetched_at < self.ttl_seconds

    async def get_rates(self, base: str = "USD") -> Dict[str, Decimal]:
        """Rates for one unit of `base`. Never raises for provider failures."""
        base = base.upper()
        entry = await self.store.get(base)
        if entry is not None:
            if not self.is_fresh(entry):
                self._schedule_refresh(base)
            return entry.rates
        return await self.refresh(base)

    async def refresh(self, base: str) -> Dict[str, Decimal]:
        base = base.upper()
        try:
            rates = await self.provider.fetch(base)
        except RateProviderUnavailable as e:
            logger.warning(f"{e}; using fallback rates for {base}")
            return fallback_rates(base)
        await self.store.set(RateEntry(base=base, rates=rates, fetched_at=self.clock()))
        return rates

    def _schedule_refresh(self, base: str) -> None:
        task = self._refreshing.get(base)
        if task is not None and not task.done():
            return
        logger.info(f"Exchange rates for {base} are stale, refreshing in background")
        task = asyncio.create_task(self.refresh(base))
        self._refreshing[base] = task
        task.add_done_callback(lambda t: self._refresh_done(base, t))

    def _refresh_done(self, base: str, task: asyncio.Task) -> None:
        if self._refreshing.get(base) is task:
            del self._refreshing[base]
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background exchange rate refresh for {base} failed: {task.exception()}")

    async def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return Decimal("1")
        rates = await self.get_rates(from_currency)
        rate = rates.get(to_currency)
        if rate is None:
            raise ValidationError(f"Exchange rate not found for {to_currency}")
        return rate

    async def convert(self, amount, from_currency: str, to_currency: str) -> Decimal:
        """Convert `amount`, rounded to cents"""
        rate = await self.get_rate(from_currency, to_currency)
        return apply_rate(amount, rate)

    async def run_periodic_refresh(self, bases: Iterable[str], interval_seconds: Optional[float] = None) -> None:
        """Keep `bases` warm until cancelled"""
        interval = self.ttl_seconds if interval_seconds is None else interval_seconds
        bases = list(bases)
        while True:
            for base in bases:
                try:
                    await self.refresh(base)
                except Exception:
                    logger.exception(f"Periodic exchange rate refresh for {base} failed")
            await asyncio.sleep(interval)


_rate_cache: Optional[ExchangeRateCache] = None


def get_rate_cache() -> ExchangeRateCache:
    """Shared cache backed by Redis, with a per-process copy"""
    global _rate_cache
    if _rate_cache is None:
        _rate_cache = ExchangeRateCache(store=LayeredRateStore(InMemoryRateStore(), RedisRateStore()))
    return _rate_cache
