"""
backend/app/config.py

Purpose:
    Central settings loading for the placement backend.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    # Odds provider (TheOddsAPI v4). Empty key => placement answers "misconfigured".
    ODDSAPIKEY: str = ""
    THEODDSAPI_BASE_URL: str = "https://api.the-odds-api.com/v4"
    ODDS_REGIONS: str = "eu"
    ODDS_FEATURED_MARKETS: str = "h2h,totals,spreads"
    ODDS_DEFAULT_MARKETS: str = "h2h,totals,alternate_totals,spreads,btts,draw_no_bet,h2h_3_way"
    ODDS_EVENT_MARKETS: str = "h2h,totals,spreads,btts,draw_no_bet,h2h_3_way"
    ODDS_HTTP_TIMEOUT_SECONDS: float = 15.0
    ODDS_HTTP_MAX_RETRIES: int = 0  # placement fails closed, no implicit retries
    ODDS_FETCH_CONCURRENCY: int = 4
    ODDS_ENRICHMENT_ENABLED: bool = True
    ODDS_ENRICHMENT_CONCURRENCY: int = 4

    # External ledger (settlement + token lookup)
    LEDGER_URL: str = ""
    LEDGER_ANON_KEY: str = ""
    LEDGER_SERVICE_KEY: str = ""
    LEDGER_HTTP_TIMEOUT_SECONDS: float = 20.0

    # Placement defaults (overridable per request)
    PLACEMENT_DEFAULT_CURRENCY: str = "NGN"
    PLACEMENT_DEFAULT_ALLOW_LIVE: bool = True
    PLACEMENT_DEFAULT_CUTOFF_MINUTES: float = 2.0
    PLACEMENT_DEFAULT_PRICE_TOLERANCE: float = 0.02
    FALLBACK_KICKOFF_WINDOW_HOURS: float = 2.0

    BACKEND_CORS_ORIGINS: str = "http://localhost:8081"
    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
