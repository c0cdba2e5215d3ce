from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CountryRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    iso_code: str = Field(min_length=2, max_length=2)
    dial_code: str
    currency: str
    flag: str = ""

    @field_validator("iso_code", "currency")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("dial_code")
    @classmethod
    def _plus_prefixed(cls, value: str) -> str:
        digits = value.strip().lstrip("+")
        return f"+{digits}" if digits else ""


class LocationSignal(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    country_code: str | None = None
    currency: str | None = None
    city: str | None = None
    region: str | None = None
    timezone: str | None = None
    ip: str | None = None
