import asyncio
from datetime import timedelta

import httpx

from coffer.aggregator import PriceAggregator
from coffer.cache import PriceCache
from coffer.fetchers import FxProvider, MetalProvider, parse_fx_rates, parse_goldprice_org

from conftest import T0, FakeStore, build_client

METAL_URL = "https://metal.test/spot"
BACKUP_URL = "https://backup.test/spot"
FX_URL = "https://fx.test/usd"

METALS = [
    MetalProvider("metal", (METAL_URL,), parse_goldprice_org),
    MetalProvider("backup", (BACKUP_URL,), parse_goldprice_org),
]
FX = [FxProvider("fx", (FX_URL,), parse_fx_rates)]


def make_aggregator(previous, routes, store=None, now=None):
    cache = PriceCache(previous)
    clock = (lambda: now) if now is not None else (lambda: T0 + timedelta(minutes=5))
    aggregator = PriceAggregator(
        cache=cache,
        store=store or FakeStore(),
        client=build_client(routes),
        metal_providers=METALS,
        fx_providers=FX,
        clock=clock,
    )
    return aggregator, cache


def test_refresh_publishes_new_values(previous):
    routes = {
        METAL_URL: {"items": [{"xauPrice": 2650.5, "xagPrice": 31.25}]},
        FX_URL: {"rates": {"INR": 84.2, "AED": 3.6725, "EUR": 0.93, "GBP": 0.78}},
    }
    store = FakeStore()
    aggregator, cache = make_aggregator(previous, routes, store)

    report = asyncio.run(aggregator.refresh())

    snapshot = cache.get_current_snapshot()
    assert snapshot is report.snapshot
    assert (snapshot.gold_usd, snapshot.silver_usd) == (2650.5, 31.25)
    assert (snapshot.usd_inr, snapshot.usd_aed, snapshot.usd_eur, snapshot.usd_gbp) == (84.2, 3.6725, 0.93, 0.78)
    assert snapshot.fetched_at == T0 + timedelta(minutes=5)
    assert report.metal_source == "metal"
    assert report.fx_source == "fx"
    assert report.persisted
    assert store.saved == [snapshot]


def test_all_metal_sources_failing_keeps_previous_prices(previous):
    routes = {
        METAL_URL: {"items": [{"xauPrice": 999.99, "xagPrice": 12.0}]},
        BACKUP_URL: httpx.ConnectError("down"),
        FX_URL: {"rates": {"INR": 84.2}},
    }
    aggregator, cache = make_aggregator(previous, routes)

    report = asyncio.run(aggregator.refresh())

    snapshot = cache.get_current_snapshot()
    assert snapshot.gold_usd == previous.gold_usd
    assert snapshot.silver_usd == previous.silver_usd
    assert snapshot.usd_inr == 84.2
    assert report.metal_source is None


def test_partial_fx_bundle_only_overwrites_present_fields(previous):
    routes = {
        METAL_URL: httpx.Response(500),
        BACKUP_URL: httpx.Response(500),
        FX_URL: {"rates": {"INR": 85.0, "EUR": 0.95}},
    }
    aggregator, cache = make_aggregator(previous, routes)

    asyncio.run(aggregator.refresh())

    snapshot = cache.get_current_snapshot()
    assert snapshot.usd_inr == 85.0
    assert snapshot.usd_eur == 0.95
    assert snapshot.usd_aed == previous.usd_aed
    assert snapshot.usd_gbp == previous.usd_gbp


def test_missing_silver_keeps_previous_silver(previous):
    routes = {METAL_URL: {"items": [{"xauPrice": 2700.0}]}}
    aggregator, cache = make_aggregator(previous, routes)

    asyncio.run(aggregator.refresh())

    snapshot = cache.get_current_snapshot()
    assert snapshot.gold_usd == 2700.0
    assert snapshot.silver_usd == previous.silver_usd


def test_networkless_cycle_only_advances_timestamp(previous):
    aggregator, cache = make_aggregator(previous, {})

    report = asyncio.run(aggregator.refresh())

    snapshot = cache.get_current_snapshot()
    assert snapshot.model_dump(exclude={"fetched_at"}) == previous.model_dump(exclude={"fetched_at"})
    assert snapshot.fetched_at > previous.fetched_at
    assert report.metal_source is None and report.fx_source is None


def test_fetched_at_never_goes_backwards(previous):
    aggregator, cache = make_aggregator(previous, {}, now=T0 - timedelta(hours=1))

    asyncio.run(aggregator.refresh())
    asyncio.run(aggregator.refresh())

    assert cache.get_current_snapshot().fetched_at == previous.fetched_at


def test_persistence_failure_still_publishes(previous):
    routes = {METAL_URL: {"items": [{"xauPrice": 2800.0, "xagPrice": 33.0}]}}
    aggregator, cache = make_aggregator(previous, routes, FakeStore(fail_writes=True))

    report = asyncio.run(aggregator.refresh())

    assert not report.persisted
    assert cache.get_current_snapshot().gold_usd == 2800.0


def test_readers_never_see_a_torn_snapshot(previous):
    release = asyncio.Event()

    async def handler(request):
        await release.wait()
        if request.url.host == "metal.test":
            return httpx.Response(200, json={"items": [{"xauPrice": 2900.0, "xagPrice": 35.0}]})
        return httpx.Response(200, json={"rates": {"INR": 86.0, "AED": 3.7, "EUR": 0.97, "GBP": 0.81}})

    cache = PriceCache(previous)
    aggregator = PriceAggregator(
        cache=cache,
        store=FakeStore(),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        metal_providers=METALS,
        fx_providers=FX,
    )
    seen = []

    async def run():
        refresh = asyncio.create_task(aggregator.refresh())
        for _ in range(20):
            seen.append(cache.get_current_snapshot())
            await asyncio.sleep(0)
        release.set()
        report = await refresh
        seen.append(cache.get_current_snapshot())
        return report

    report = asyncio.run(run())

    assert all(s is previous or s is report.snapshot for s in seen)
    assert seen[0] is previous
    assert seen[-1] is report.snapshot
    assert report.snapshot.gold_usd == 2900.0 and report.snapshot.usd_gbp == 0.81


def test_overflowing_provider_values_are_discarded(previous):
    routes = {
        METAL_URL: httpx.Response(200, content=b'{"items":[{"xauPrice":1e400,"xagPrice":30}]}'),
        BACKUP_URL: httpx.Response(200, content=b'{"items":[{"xauPrice":2500,"xagPrice":1e400}]}'),
        FX_URL: httpx.Response(200, content=b'{"rates":{"INR":1e400,"EUR":0.95}}'),
    }
    store = FakeStore()
    aggregator, cache = make_aggregator(previous, routes, store)

    report = asyncio.run(aggregator.refresh())

    snapshot = cache.get_current_snapshot()
    assert report.metal_source == "backup"
    assert snapshot.gold_usd == 2500.0
    assert snapshot.silver_usd == previous.silver_usd
    assert report.fx_source is None
    assert snapshot.usd_inr == previous.usd_inr
    assert snapshot.usd_eur == previous.usd_eur
    assert store.saved == [snapshot]
