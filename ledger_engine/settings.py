"""
Configuration for the ledger engine.

Values come from ``LEDGER_``-prefixed environment variables or a ``.env`` file.
"""
from __future__ import annotations

from datetime import date
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ledger_engine.currency_conversion import (
    CustomDate,
    ReportDate,
    TransactionDate,
    ValuationPolicy,
    normalize_currency,
)


class LedgerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_currency: str = Field(
        default="USD",
        description="Currency every report is valued in",
    )
    valuation_policy: Literal["transaction_date", "report_date", "custom_date"] = Field(
        default="transaction_date",
        description="Which date indexes the FX book when converting",
    )
    valuation_date: Optional[date] = Field(
        default=None,
        description="Fixed valuation date, required by the custom_date policy",
    )
    fx_tolerance_days: int = Field(
        default=0,
        ge=0,
        description="How many days back a missing rate may fall to the nearest prior one",
    )
    log_level: str = Field(default="INFO")

    @field_validator("base_currency")
    @classmethod
    def validate_base_currency(cls, v: str) -> str:
        return normalize_currency(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def check_custom_date(self) -> "LedgerSettings":
        if self.valuation_policy == "custom_date" and self.valuation_date is None:
            raise ValueError("valuation_date is required for the custom_date policy")
        return self

    def valuation(self) -> ValuationPolicy:
        if self.valuation_policy == "report_date":
            return ReportDate()
        if self.valuation_policy == "custom_date":
            return CustomDate(self.valuation_date)
        return TransactionDate()


@lru_cache
def get_settings() -> LedgerSettings:
    return LedgerSettings()
