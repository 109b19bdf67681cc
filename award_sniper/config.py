from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

load_dotenv()


DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36",
]

# Region name -> airports scanned by multi-destination / multi-origin searches
REGIONS: Dict[str, List[str]] = {
    "ARGENTINA": ["EZE", "AEP", "COR", "MDZ", "ROS", "BRC", "IGR", "SLA", "USH"],
    "BRASIL": ["GRU", "GIG", "BSB", "SSA", "REC", "FOR", "FLN", "POA", "CNF"],
    "EUROPA": ["MAD", "BCN", "FCO", "CDG", "LIS", "FRA", "AMS", "LHR", "MXP"],
    "USA": ["MIA", "JFK", "MCO", "LAX", "ATL", "IAH", "DFW", "ORD"],
    "CARIBE": ["PUJ", "CUN", "AUA", "CUR", "SDQ", "HAV", "MBJ"],
}

# Metropolitan codes accepted as an origin and the airports they cover
CITY_AIRPORTS: Dict[str, List[str]] = {
    "BUE": ["EZE", "AEP"],
    "SAO": ["GRU", "CGH", "VCP"],
    "RIO": ["GIG", "SDU"],
    "NYC": ["JFK", "EWR", "LGA"],
    "LON": ["LHR", "LGW", "LCY", "STN"],
    "PAR": ["CDG", "ORY"],
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_token: Optional[str] = Field(None, alias="TELEGRAM_BOT_TOKEN")

    search_url: str = Field(
        "https://api-air-flightsearch-green.smiles.com.br/v1/airlines",
        alias="SMILES_SEARCH_URL",
    )
    tax_url: str = Field(
        "https://api-airlines-boarding-tax-green.smiles.com.br/v1/airlines/flight",
        alias="SMILES_TAX_URL",
    )
    api_key: str = Field("", alias="SMILES_API_KEY")
    auth_tokens: Annotated[List[str], NoDecode] = Field(
        default_factory=list, alias="SMILES_AUTH_TOKENS"
    )
    user_agents: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_USER_AGENTS),
        alias="SMILES_USER_AGENTS",
    )

    max_results: int = Field(10, alias="MAX_RESULTS")
    request_timeout_s: float = Field(30.0, alias="REQUEST_TIMEOUT_S")
    retry_delay_s: float = Field(1.0, alias="RETRY_DELAY_S")
    max_parallel_requests: int = Field(16, alias="MAX_PARALLEL_REQUESTS")

    queue_cooldown_s: float = Field(65.0, alias="QUEUE_COOLDOWN_S")
    queue_tick_s: float = Field(0.5, alias="QUEUE_TICK_S")

    db_path: str = Field("award_sniper.db", alias="SNIPER_DB")
    currency: str = Field("ARS", alias="CURRENCY")
    region_code: str = Field("ar", alias="REGION_CODE")
    timezone: str = Field("America/Argentina/Buenos_Aires", alias="TIMEZONE")
    sync_interval_s: float = Field(60.0, alias="SYNC_INTERVAL_S")

    @field_validator("telegram_token")
    @classmethod
    def _token_non_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("TELEGRAM_BOT_TOKEN must not be blank")
        return v

    @field_validator(
        "max_results", "max_parallel_requests", "request_timeout_s", "queue_tick_s",
        "sync_interval_s",
    )
    @classmethod
    def _positive(cls, v):
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("retry_delay_s", "queue_cooldown_s")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @field_validator("auth_tokens", mode="before")
    @classmethod
    def _split_tokens(cls, v):
        if isinstance(v, str):
            return [a.strip() for a in v.split(",") if a.strip()]
        return v

    # user agents contain commas themselves
    @field_validator("user_agents", mode="before")
    @classmethod
    def _split_agents(cls, v):
        if isinstance(v, str):
            return [a.strip() for a in v.split("|") if a.strip()]
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return application settings loaded from the environment."""
    return Settings()  # type: ignore[call-arg]


__all__ = ["Settings", "get_settings", "REGIONS", "CITY_AIRPORTS"]
