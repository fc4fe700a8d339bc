from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from coffer.config import DEFAULT_PRICES


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════════════════════
# Price State
# ══════════════════════════════════════════════════════════════════════════════

class Snapshot(BaseModel):
    """
    The complete set of current prices and FX rates.

    Instances are frozen: a refresh builds a new Snapshot and swaps it in whole,
    so every field is either from the previous cycle or the new one.
    """

    model_config = ConfigDict(frozen=True)

    gold_usd: float = Field(gt=0, allow_inf_nan=False)
    silver_usd: float = Field(gt=0, allow_inf_nan=False)
    usd_inr: float = Field(gt=0, allow_inf_nan=False)
    usd_aed: float = Field(gt=0, allow_inf_nan=False)
    usd_eur: float = Field(gt=0, allow_inf_nan=False)
    usd_gbp: float = Field(gt=0, allow_inf_nan=False)
    fetched_at: datetime

    @field_validator("fetched_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive timestamps
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def with_values(self, **changes) -> "Snapshot":
        """Return a validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        return Snapshot(**data)

    def rate(self, currency: str) -> float:
        """Units of `currency` per 1 USD."""
        if currency == "USD":
            return 1.0
        return getattr(self, f"usd_{currency.lower()}")

    def spot(self, metal: str) -> float:
        return getattr(self, f"{metal}_usd")


def default_snapshot() -> Snapshot:
    return Snapshot(**DEFAULT_PRICES, fetched_at=utcnow())


class Candidate(BaseModel):
    """A metal provider's proposed prices. Never persisted."""

    source: str
    gold_usd: float
    silver_usd: Optional[float] = None


class FxCandidate(BaseModel):
    """An FX provider's proposed rates, keyed by currency code."""

    source: str
    rates: dict[str, float]


# ══════════════════════════════════════════════════════════════════════════════
# API Models
# ══════════════════════════════════════════════════════════════════════════════

class PricesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    gold: float
    silver: float
    rates: dict[str, float]
    fetched_at: datetime = Field(alias="fetchedAt")


class ValueResponse(BaseModel):
    metal: str
    grams: float
    purity: float
    currency: str
    spot_per_troy_ounce: float
    value: float
    fetched_at: datetime


class HealthResponse(BaseModel):
    ok: bool
    uptime: float
    cache_age_seconds: Optional[int] = None
