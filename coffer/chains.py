"""
Ordered provider chains.

Each chain tries its providers strictly in priority order and stops at the first
candidate that passes its acceptance rule. Order decides, not magnitude: later
providers are never invoked once one is accepted.
"""

import logging
import math
from typing import Sequence

import httpx

from coffer.config import FETCH_TIMEOUT_SECONDS, GOLD_SANITY_FLOOR
from coffer.errors import AllSourcesExhausted
from coffer.fetchers import FxProvider, MetalProvider, fetch_candidate
from coffer.models import Candidate, FxCandidate

FX_VALIDITY_FIELD = "INR"


def accept_metal(candidate: Candidate, floor: float = GOLD_SANITY_FLOOR) -> bool:
    return math.isfinite(candidate.gold_usd) and candidate.gold_usd > floor


def accept_fx(candidate: FxCandidate) -> bool:
    return FX_VALIDITY_FIELD in candidate.rates


async def run_metal_chain(
    client: httpx.AsyncClient,
    providers: Sequence[MetalProvider],
    timeout: float = FETCH_TIMEOUT_SECONDS,
    floor: float = GOLD_SANITY_FLOOR,
) -> Candidate:
    """
    Return the first accepted spot-price candidate.

    Raises AllSourcesExhausted if every provider fails or is rejected.
    """
    tried = []
    for provider in providers:
        tried.append(provider.name)
        candidate = await fetch_candidate(client, provider, timeout)
        if candidate is None:
            continue
        if not accept_metal(candidate, floor):
            logging.warning(
                f"[prices] {provider.name} rejected: gold {candidate.gold_usd} is not above {floor}"
            )
            continue
        logging.info(f"[prices] {provider.name} — Gold: ${candidate.gold_usd:.2f} Silver: {candidate.silver_usd}")
        return candidate
    raise AllSourcesExhausted("metals", tried)


async def run_fx_chain(
    client: httpx.AsyncClient,
    providers: Sequence[FxProvider],
    timeout: float = FETCH_TIMEOUT_SECONDS,
) -> FxCandidate:
    """
    Return the first FX bundle carrying a usable INR rate.

    The bundle may be partial; applying it field by field is the caller's job.
    """
    tried = []
    for provider in providers:
        tried.append(provider.name)
        candidate = await fetch_candidate(client, provider, timeout)
        if candidate is None:
            continue
        if not accept_fx(candidate):
            logging.warning(f"[prices] {provider.name} rejected: no usable {FX_VALIDITY_FIELD} rate")
            continue
        logging.info(f"[prices] FX {provider.name} — INR: {candidate.rates[FX_VALIDITY_FIELD]}")
        return candidate
    raise AllSourcesExhausted("fx", tried)
