from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

load_dotenv()

WEI = 10**18


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    db_path: str = Field("surety.db", alias="SURETY_DB")
    log_file: str = Field("surety.log", alias="LOG_FILE")

    owner: str = Field("owner", alias="CONTRACT_OWNER")
    first_airline: str = Field("airline-1", alias="FIRST_AIRLINE")
    first_airline_name: str = Field("Airline 1", alias="FIRST_AIRLINE_NAME")

    registration_fee: int = Field(WEI, alias="REGISTRATION_FEE")
    airline_funding_amount: int = Field(10 * WEI, alias="AIRLINE_FUNDING_AMOUNT")
    min_responses: int = Field(3, alias="MIN_RESPONSES")
    insurance_cap: int = Field(WEI, alias="INSURANCE_CAP")
    payout_multiplier: Decimal = Field(Decimal("1.5"), alias="PAYOUT_MULTIPLIER")

    max_unvoted_airlines: int = Field(4, alias="MAX_UNVOTED_AIRLINES")
    vote_threshold_percent: int = Field(50, alias="VOTE_THRESHOLD_PERCENT")
    vote_rounding: str = Field("up", alias="VOTE_ROUNDING")

    index_range: int = Field(10, alias="INDEX_RANGE")
    oracle_count: int = Field(25, alias="ORACLE_COUNT")
    oracle_poll_interval_s: int = Field(10, alias="ORACLE_POLL_INTERVAL_S")
    status_source_url: Optional[str] = Field(None, alias="STATUS_SOURCE_URL")

    @field_validator(
        "registration_fee",
        "airline_funding_amount",
        "min_responses",
        "insurance_cap",
        "index_range",
        "oracle_poll_interval_s",
    )
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("max_unvoted_airlines", "oracle_count")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @field_validator("payout_multiplier")
    @classmethod
    def _multiplier_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("PAYOUT_MULTIPLIER must be greater than 0")
        return v

    @field_validator("vote_threshold_percent")
    @classmethod
    def _percent_range(cls, v: int) -> int:
        if not 1 <= v <= 100:
            raise ValueError("VOTE_THRESHOLD_PERCENT must be between 1 and 100")
        return v

    @field_validator("vote_rounding")
    @classmethod
    def _rounding_mode(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("up", "down"):
            raise ValueError("VOTE_ROUNDING must be 'up' or 'down'")
        return v

    @field_validator("owner", "first_airline")
    @classmethod
    def _identity_non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("identity must be a non-empty string")
        return v.strip()


@lru_cache()
def get_settings() -> Settings:
    """Return application settings loaded from the environment."""
    return Settings()  # type: ignore[call-arg]


__all__ = ["Settings", "get_settings", "WEI"]
