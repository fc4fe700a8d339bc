"""
Shared fixtures for the spot-price tests.

Network access goes through httpx.MockTransport; routes map a URL to either a
JSON payload, an httpx.Response, or an exception to raise.
"""

from datetime import datetime, timezone

import httpx
import pytest

from coffer.errors import PersistenceError
from coffer.models import Snapshot

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeStore:
    def __init__(self, snapshot=None, fail_writes=False):
        self.snapshot = snapshot
        self.fail_writes = fail_writes
        self.saved = []

    def load_snapshot(self):
        return self.snapshot

    def save_snapshot(self, snapshot):
        if self.fail_writes:
            raise PersistenceError("disk full")
        self.saved.append(snapshot)
        self.snapshot = snapshot


def build_client(routes: dict, calls: list | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        if url not in routes:
            return httpx.Response(404, json={"error": "not found"})
        route = routes[url]
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def previous() -> Snapshot:
    return Snapshot(
        gold_usd=3000.0,
        silver_usd=30.0,
        usd_inr=83.0,
        usd_aed=3.67,
        usd_eur=0.9,
        usd_gbp=0.8,
        fetched_at=T0,
    )
