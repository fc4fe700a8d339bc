"""
Source fetchers for spot prices and FX rates.

A provider is configuration: a name, the URL(s) it reads, and a parser that turns
the decoded JSON documents into a candidate. `fetch_candidate` performs the
bounded network calls and never raises; any failure becomes "no candidate".
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

import httpx

from coffer.config import (
    EXCHANGERATE_API_URL,
    FETCH_TIMEOUT_SECONDS,
    FRANKFURTER_XAG_URL,
    FRANKFURTER_XAU_URL,
    FX_CURRENCIES,
    GOLDPRICE_ORG_URL,
    METALS_API_URL,
    METALS_LIVE_URL,
    OPEN_ER_API_URL,
    USER_AGENT,
    Settings,
)
from coffer.errors import FetchError, FetchNetworkError, FetchParseError, FetchTimeout
from coffer.models import Candidate, FxCandidate

PARSE_ERRORS = (KeyError, IndexError, TypeError, ValueError, ArithmeticError)


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared HTTP client for connection pooling across refresh cycles."""
    return httpx.AsyncClient(
        timeout=settings.fetch_timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
    )


# ══════════════════════════════════════════════════════════════════════════════
# Providers
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MetalProvider:
    name: str
    urls: tuple[str, ...]
    parse: Callable[[list[Any]], tuple[float, Optional[float]]]

    def to_candidate(self, documents: list[Any]) -> Candidate:
        gold, silver = self.parse(documents)
        return Candidate(source=self.name, gold_usd=gold, silver_usd=silver)


@dataclass(frozen=True)
class FxProvider:
    name: str
    urls: tuple[str, ...]
    parse: Callable[[list[Any]], dict[str, float]]

    def to_candidate(self, documents: list[Any]) -> FxCandidate:
        return FxCandidate(source=self.name, rates=self.parse(documents))


Provider = Union[MetalProvider, FxProvider]


def _positive(value: Any) -> Optional[float]:
    """Return value as a float if it is a positive finite number, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) and number > 0 else None


def parse_metals_api(documents: list[Any]) -> tuple[float, Optional[float]]:
    # Quotes are ounces per USD, so invert
    rates = documents[0]["rates"]
    gold = 1 / float(rates["XAU"])
    xag = _positive(rates.get("XAG"))
    return gold, (1 / xag if xag else None)


def parse_metals_live(documents: list[Any]) -> tuple[float, Optional[float]]:
    data = documents[0]
    if not isinstance(data, list):
        raise TypeError(f"expected a list, got {type(data).__name__}")
    gold = silver = None
    for item in data:
        if not isinstance(item, dict):
            continue
        if item.get("gold"):
            gold = item["gold"]
        if item.get("silver"):
            silver = item["silver"]
    if gold is None:
        raise ValueError("no gold quote in response")
    return float(gold), _positive(silver)


def parse_goldprice_org(documents: list[Any]) -> tuple[float, Optional[float]]:
    item = documents[0]["items"][0]
    return float(item["xauPrice"]), _positive(item.get("xagPrice"))


def parse_frankfurter(documents: list[Any]) -> tuple[float, Optional[float]]:
    xau, xag = documents
    return float(xau["rates"]["USD"]), _positive(xag.get("rates", {}).get("USD"))


def parse_fx_rates(documents: list[Any]) -> dict[str, float]:
    """Keep only the tracked currencies that are present and positive."""
    rates = documents[0]["rates"]
    if not isinstance(rates, dict):
        raise TypeError(f"expected a rates object, got {type(rates).__name__}")
    parsed = {}
    for code in FX_CURRENCIES:
        value = _positive(rates.get(code))
        if value is not None:
            parsed[code] = value
    return parsed


def default_metal_providers(settings: Settings) -> list[MetalProvider]:
    """Metal providers in priority order."""
    return [
        MetalProvider("metals-api", (METALS_API_URL.format(key=settings.metals_api_key),), parse_metals_api),
        MetalProvider("metals.live", (METALS_LIVE_URL,), parse_metals_live),
        MetalProvider("goldprice.org", (GOLDPRICE_ORG_URL,), parse_goldprice_org),
        MetalProvider("frankfurter", (FRANKFURTER_XAU_URL, FRANKFURTER_XAG_URL), parse_frankfurter),
    ]


def default_fx_providers() -> list[FxProvider]:
    """FX providers in priority order."""
    return [
        FxProvider("exchangerate-api", (EXCHANGERATE_API_URL,), parse_fx_rates),
        FxProvider("open.er-api", (OPEN_ER_API_URL,), parse_fx_rates),
    ]


# ══════════════════════════════════════════════════════════════════════════════
# Fetching
# ══════════════════════════════════════════════════════════════════════════════

async def fetch_json(client: httpx.AsyncClient, source: str, url: str, timeout: float) -> Any:
    """GET `url` and decode JSON, raising a FetchError subclass on any failure."""
    try:
        response = await asyncio.wait_for(client.get(url, timeout=timeout), timeout=timeout)
        response.raise_for_status()
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise FetchTimeout(source, f"timed out after {timeout}s") from e
    except httpx.HTTPStatusError as e:
        raise FetchNetworkError(source, f"HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise FetchNetworkError(source, str(e) or type(e).__name__) from e

    try:
        return response.json()
    except ValueError as e:
        raise FetchParseError(source, f"invalid JSON: {e}") from e


async def fetch_candidate(
    client: httpx.AsyncClient,
    provider: Provider,
    timeout: float = FETCH_TIMEOUT_SECONDS,
) -> Optional[Union[Candidate, FxCandidate]]:
    """
    Fetch and parse one provider. Returns None instead of raising.

    No retries here: the next scheduled refresh is the retry.
    """
    try:
        documents = [await fetch_json(client, provider.name, url, timeout) for url in provider.urls]
        try:
            return provider.to_candidate(documents)
        except PARSE_ERRORS as e:
            raise FetchParseError(provider.name, f"unexpected payload: {e!r}") from e
    except FetchError as e:
        logging.warning(f"[prices] {type(e).__name__} from {e}")
    except Exception as e:
        logging.warning(f"[prices] Unexpected error fetching from {provider.name}: {e!r}")
    return None
