from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

SUPPORTED_CACHE_BACKENDS = {"memory", "redis"}

DEFAULT_COUNTRIES_SOURCE_URL = "https://restcountries.com/v3.1/all?fields=name,cca2,idd,currencies,flag"
DEFAULT_GEOLOCATION_URL = "https://ipapi.co/json/"
COUNTRY_CACHE_TTL_SECONDS = 24 * 60 * 60
LOCATION_CACHE_TTL_SECONDS = 30 * 24 * 60 * 60
REDIRECT_COUNTDOWN_SECONDS = 30
PHONE_DEBOUNCE_MS = 300


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return tuple()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env(name: str) -> str | None:
    raw_value = os.getenv(name)
    if raw_value is None:
        return None
    normalized = raw_value.strip()
    return normalized or None


def _flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name) or default).strip().lower() in {"1", "true", "yes"}


def collect_missing_required_env_vars() -> list[str]:
    missing: list[str] = []

    for var_name in ("SHOP_API_BASE_URL",):
        if _env(var_name) is None:
            missing.append(var_name)

    cache_backend = (_env("CACHE_BACKEND") or "memory").lower()
    if cache_backend == "redis" and _env("REDIS_URL") is None:
        missing.append("REDIS_URL")

    return sorted(set(missing))


def _check_int(name: str, *, minimum: int, message: str, invalid_values: list[str]) -> None:
    raw = _env(name)
    if raw is None:
        return
    try:
        parsed = int(raw)
        if parsed < minimum:
            raise ValueError("out of range")
    except ValueError:
        invalid_values.append(message)


def collect_invalid_env_values() -> list[str]:
    invalid_values: list[str] = []

    cache_backend = (_env("CACHE_BACKEND") or "memory").lower()
    if cache_backend not in SUPPORTED_CACHE_BACKENDS:
        invalid_values.append("CACHE_BACKEND must be one of: memory, redis")

    _check_int(
        "REDIRECT_COUNTDOWN_SECONDS",
        minimum=1,
        message="REDIRECT_COUNTDOWN_SECONDS must be a positive integer",
        invalid_values=invalid_values,
    )
    _check_int(
        "PHONE_DEBOUNCE_MS",
        minimum=0,
        message="PHONE_DEBOUNCE_MS must be a non-negative integer",
        invalid_values=invalid_values,
    )
    _check_int(
        "COUNTRY_CACHE_TTL_SECONDS",
        minimum=1,
        message="COUNTRY_CACHE_TTL_SECONDS must be a positive integer",
        invalid_values=invalid_values,
    )
    _check_int(
        "LOCATION_CACHE_TTL_SECONDS",
        minimum=1,
        message="LOCATION_CACHE_TTL_SECONDS must be a positive integer",
        invalid_values=invalid_values,
    )

    timeout = _env("SHOP_API_TIMEOUT_SECONDS")
    if timeout is not None:
        try:
            if float(timeout) <= 0:
                raise ValueError("must be positive")
        except ValueError:
            invalid_values.append("SHOP_API_TIMEOUT_SECONDS must be a positive number")

    return invalid_values


def validate_required_environment() -> None:
    missing_vars = collect_missing_required_env_vars()
    invalid_values = collect_invalid_env_values()
    if not missing_vars and not invalid_values:
        return

    message_lines = ["Application startup blocked by invalid environment configuration."]
    if missing_vars:
        message_lines.append("")
        message_lines.append("Missing required environment variables:")
        message_lines.extend(f"- {name}" for name in missing_vars)
    if invalid_values:
        message_lines.append("")
        message_lines.append("Invalid environment values:")
        message_lines.extend(f"- {message}" for message in invalid_values)
    raise RuntimeError("\n".join(message_lines))


@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str
    cors_origins: tuple[str, ...]
    debug_include_error_details: bool
    shop_api_base_url: str
    shop_api_timeout_seconds: float
    tenant_hostname: str | None
    countries_source_url: str
    geolocation_url: str
    cache_backend: str
    redis_url: str | None
    country_cache_ttl_seconds: int
    location_cache_ttl_seconds: int
    redirect_countdown_seconds: int
    phone_debounce_ms: int
    phone_strict_validation: bool
    display_locale: str

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    validate_required_environment()

    return Settings(
        env=os.getenv("ENV", "development"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")),
        debug_include_error_details=_flag("DEBUG_INCLUDE_ERROR_DETAILS"),
        shop_api_base_url=(_env("SHOP_API_BASE_URL") or "").rstrip("/"),
        shop_api_timeout_seconds=float(_env("SHOP_API_TIMEOUT_SECONDS") or 10),
        tenant_hostname=_env("TENANT_HOSTNAME"),
        countries_source_url=_env("COUNTRIES_SOURCE_URL") or DEFAULT_COUNTRIES_SOURCE_URL,
        geolocation_url=_env("GEOLOCATION_URL") or DEFAULT_GEOLOCATION_URL,
        cache_backend=(_env("CACHE_BACKEND") or "memory").lower(),
        redis_url=_env("REDIS_URL"),
        country_cache_ttl_seconds=int(_env("COUNTRY_CACHE_TTL_SECONDS") or COUNTRY_CACHE_TTL_SECONDS),
        location_cache_ttl_seconds=int(_env("LOCATION_CACHE_TTL_SECONDS") or LOCATION_CACHE_TTL_SECONDS),
        redirect_countdown_seconds=int(_env("REDIRECT_COUNTDOWN_SECONDS") or REDIRECT_COUNTDOWN_SECONDS),
        phone_debounce_ms=int(_env("PHONE_DEBOUNCE_MS") or PHONE_DEBOUNCE_MS),
        phone_strict_validation=_flag("PHONE_STRICT_VALIDATION"),
        display_locale=_env("DISPLAY_LOCALE") or "fr_FR",
    )
