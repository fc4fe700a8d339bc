"""
One refresh cycle: fetch, reconcile with the previous snapshot, persist, publish.

`PriceAggregator.refresh` holds no lock. Callers must not run two cycles at
once; RefreshScheduler is the caller that guarantees this.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol, Sequence

import httpx

from coffer.cache import PriceCache
from coffer.config import FETCH_TIMEOUT_SECONDS, FX_CURRENCIES, GOLD_SANITY_FLOOR
from coffer.chains import run_fx_chain, run_metal_chain
from coffer.errors import AllSourcesExhausted, PersistenceError
from coffer.fetchers import FxProvider, MetalProvider
from coffer.models import Snapshot, utcnow


class SnapshotStore(Protocol):
    def load_snapshot(self) -> Optional[Snapshot]: ...

    def save_snapshot(self, snapshot: Snapshot) -> None: ...


@dataclass
class RefreshReport:
    snapshot: Snapshot
    metal_source: Optional[str] = None
    fx_source: Optional[str] = None
    persisted: bool = False


class PriceAggregator:
    def __init__(
        self,
        cache: PriceCache,
        store: SnapshotStore,
        client: httpx.AsyncClient,
        metal_providers: Sequence[MetalProvider],
        fx_providers: Sequence[FxProvider],
        timeout: float = FETCH_TIMEOUT_SECONDS,
        gold_floor: float = GOLD_SANITY_FLOOR,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache
        self.store = store
        self.client = client
        self.metal_providers = list(metal_providers)
        self.fx_providers = list(fx_providers)
        self.timeout = timeout
        self.gold_floor = gold_floor
        self.clock = clock

    async def refresh(self) -> RefreshReport:
        logging.info("[prices] Fetching spot prices…")
        baseline = self.cache.get_current_snapshot()
        values = baseline.model_dump(exclude={"fetched_at"})
        report_sources = {}

        try:
            metals = await run_metal_chain(self.client, self.metal_providers, self.timeout, self.gold_floor)
        except AllSourcesExhausted as e:
            logging.warning(f"[prices] All price sources failed, using cached values ({e})")
        else:
            values["gold_usd"] = metals.gold_usd
            if metals.silver_usd is not None:
                values["silver_usd"] = metals.silver_usd
            report_sources["metal_source"] = metals.source

        try:
            fx = await run_fx_chain(self.client, self.fx_providers, self.timeout)
        except AllSourcesExhausted as e:
            logging.warning(f"[prices] All FX sources failed, using cached rates ({e})")
        else:
            for code in FX_CURRENCIES:
                if code in fx.rates:
                    values[f"usd_{code.lower()}"] = fx.rates[code]
            report_sources["fx_source"] = fx.source

        # Never step backwards, even if the wall clock does
        fetched_at = max(self.clock(), baseline.fetched_at)
        snapshot = Snapshot(**values, fetched_at=fetched_at)

        persisted = True
        try:
            await asyncio.to_thread(self.store.save_snapshot, snapshot)
        except PersistenceError as e:
            persisted = False
            logging.error(f"[prices] Failed to persist snapshot, publishing anyway: {e}")

        self.cache.publish(snapshot)
        return RefreshReport(snapshot=snapshot, persisted=persisted, **report_sources)
