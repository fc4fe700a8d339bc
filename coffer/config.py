"""
Configuration for the spot-price service.

Runtime knobs come from the environment (``COFFER_`` prefix) or a local ``.env``;
provider endpoints are plain constants below.
"""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ══════════════════════════════════════════════════════════════════════════════
# Constants
# ══════════════════════════════════════════════════════════════════════════════

REFRESH_INTERVAL_SECONDS = 300  # Refresh every 5 minutes
FETCH_TIMEOUT_SECONDS = 8.0
GOLD_SANITY_FLOOR = 1000.0  # Anything at or below this is a misparse, not a price
TROY_OUNCE_GRAMS = 31.1035

SUPPORTED_CURRENCIES = ["USD", "INR", "AED", "EUR", "GBP"]
FX_CURRENCIES = ["INR", "AED", "EUR", "GBP"]

# Default values seeded on a cold start with an empty store
DEFAULT_PRICES = {
    "gold_usd": 3320.0,
    "silver_usd": 33.2,
    "usd_inr": 83.5,
    "usd_aed": 3.67,
    "usd_eur": 0.92,
    "usd_gbp": 0.79,
}

METALS_API_URL = "https://metals-api.com/api/latest?access_key={key}&base=USD&symbols=XAU,XAG"
METALS_LIVE_URL = "https://api.metals.live/v1/spot"
GOLDPRICE_ORG_URL = "https://data-asg.goldprice.org/dbXRates/USD"
FRANKFURTER_XAU_URL = "https://api.frankfurter.app/latest?from=XAU&to=USD"
FRANKFURTER_XAG_URL = "https://api.frankfurter.app/latest?from=XAG&to=USD"

EXCHANGERATE_API_URL = "https://api.exchangerate-api.com/v4/latest/USD"
OPEN_ER_API_URL = "https://open.er-api.com/v6/latest/USD"

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COFFER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    db_path: Path = Field(
        default=Path("data") / "coffer.db",
        validation_alias=AliasChoices("DB_PATH", "COFFER_DB_PATH"),
    )
    host: str = "0.0.0.0"
    port: int = Field(
        default=3000,
        validation_alias=AliasChoices("PORT", "COFFER_PORT"),
    )
    refresh_interval_seconds: float = Field(default=REFRESH_INTERVAL_SECONDS, gt=0)
    fetch_timeout_seconds: float = Field(default=FETCH_TIMEOUT_SECONDS, gt=0)
    gold_sanity_floor: float = GOLD_SANITY_FLOOR
    metals_api_key: str = ""
    log_level: str = "INFO"
    scheduler_enabled: bool = True


def get_settings() -> Settings:
    return Settings()
