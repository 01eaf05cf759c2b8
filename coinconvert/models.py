from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class PriceEntity(BaseModel):
    """Single USD price observation for one coin symbol.

    Persisted with short keys (``s``/``p``/``l``) to keep the cache record
    compact; validation accepts both the short and the long field names.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(
        ...,
        validation_alias=AliasChoices("symbol", "s"),
        serialization_alias="s",
        description="Ticker symbol (lower-case).",
    )
    price_usd: float = Field(
        ...,
        ge=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("price_usd", "p"),
        serialization_alias="p",
        description="Price in USD. Zero means the provider has no price.",
    )
    last_updated: int = Field(
        ...,
        validation_alias=AliasChoices("last_updated", "l"),
        serialization_alias="l",
        description="Unix timestamp of the observation.",
    )

    @field_validator("symbol")
    @classmethod
    def _lowercase_symbol(cls, value: str) -> str:
        return value.strip().lower()


class CoinEntity(BaseModel):
    """Coin available for selection, as listed by a provider."""

    model_config = ConfigDict(frozen=True)

    api_id: str = Field(
        ...,
        validation_alias=AliasChoices("api_id", "i"),
        serialization_alias="i",
        description="Provider-specific identifier.",
    )
    symbol: str = Field(..., validation_alias=AliasChoices("symbol", "s"), serialization_alias="s")
    name: str = Field(..., validation_alias=AliasChoices("name", "n"), serialization_alias="n")


class RefreshInterval(BaseModel):
    """Provider-declared refresh cadence."""

    seconds: int = Field(..., gt=0)
    label: str


class ScheduleState(BaseModel):
    """Persisted registration of a recurring job."""

    hook: str
    next_run: int
    interval: int = Field(..., gt=0)
    label: str = ""


class RefreshSummary(BaseModel):
    """Outcome of a price refresh run."""

    source: str
    success: bool
    written_records: int = 0
    error_code: Optional[str] = None
    error: Optional[str] = None


class PriceOut(BaseModel):
    symbol: str
    price_usd: float
    last_updated: int


class PricesData(BaseModel):
    prices: List[PriceOut]
    next_update: int


class PricesResponse(BaseModel):
    success: bool = True
    data: PricesData
    count: int


class CoinOption(BaseModel):
    value: str
    label: str


class SelectedCoinsResponse(BaseModel):
    success: bool = True
    data: List[CoinOption]
    count: int


class ErrorResponse(BaseModel):
    success: bool = False
    message: str


class SourceInfo(BaseModel):
    slug: str
    name: str
