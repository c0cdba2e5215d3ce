from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat, ValidationResult

from core.settings import PHONE_DEBOUNCE_MS
from core.timers import Debouncer, Sleep
from schemas.country import CountryRecord

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\s().\-]")

_REASONS: dict[int, str] = {
    ValidationResult.TOO_SHORT: "too_short",
    ValidationResult.TOO_LONG: "too_long",
    ValidationResult.INVALID_LENGTH: "invalid_length",
    ValidationResult.IS_POSSIBLE_LOCAL_ONLY: "invalid_length",
    ValidationResult.INVALID_COUNTRY_CODE: "invalid_country_code",
}


@dataclass(frozen=True)
class PhoneValidation:
    is_valid: bool
    e164: str | None = None
    error: str | None = None
    reason: str | None = None


def international_number(local_number: str, country: CountryRecord) -> str:
    cleaned = _SEPARATORS.sub("", local_number or "")
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("00"):
        return f"+{cleaned[2:]}"
    return f"{country.dial_code}{cleaned}"


def calling_code(country: CountryRecord) -> int:
    """Root calling code of the country; the dial code may carry an area suffix (+1268)."""
    code = phonenumbers.country_code_for_region(country.iso_code)
    if code:
        return code
    return int(re.sub(r"\D", "", country.dial_code) or 0)


def _invalid(country: CountryRecord, reason: str) -> PhoneValidation:
    return PhoneValidation(is_valid=False, error=f"Invalid phone number for {country.name}", reason=reason)


def check(local_number: str, country: CountryRecord, *, strict: bool = False) -> PhoneValidation:
    """Validate against the country's numbering plan; parser errors propagate."""
    if not _SEPARATORS.sub("", local_number or ""):
        return PhoneValidation(is_valid=False, error="Phone number is required", reason="required")

    number = phonenumbers.parse(international_number(local_number, country), None)

    if number.country_code != calling_code(country):
        return _invalid(country, "country_mismatch")

    possible = phonenumbers.is_possible_number_with_reason(number)
    if possible != ValidationResult.IS_POSSIBLE:
        return _invalid(country, _REASONS.get(possible, "invalid_length"))

    if strict:
        if not phonenumbers.is_valid_number(number):
            return _invalid(country, "invalid_number")
        # Regions sharing a calling code (+1, +7) only differ by numbering plan.
        if phonenumbers.region_code_for_number(number) != country.iso_code:
            return _invalid(country, "country_mismatch")

    return PhoneValidation(is_valid=True, e164=phonenumbers.format_number(number, PhoneNumberFormat.E164))


def validate(local_number: str, country: CountryRecord, *, strict: bool = False) -> PhoneValidation:
    """Blocking validation used at submit time: an unparseable number is invalid."""
    try:
        return check(local_number, country, strict=strict)
    except NumberParseException as err:
        logger.debug("phone number rejected by parser: %s", err)
        return _invalid(country, "unparseable")


class LivePhoneValidator:
    """Debounced while-typing validation. Only annotates, never blocks input."""

    def __init__(
        self,
        *,
        delay_ms: int = PHONE_DEBOUNCE_MS,
        strict: bool = False,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._debouncer = Debouncer(delay_ms / 1000, sleep=sleep)
        self._strict = strict
        self.annotation: str | None = None

    def on_input(self, local_number: str, country: CountryRecord) -> asyncio.Task:
        return self._debouncer.schedule(self._run_check, local_number, country)

    def _run_check(self, local_number: str, country: CountryRecord) -> PhoneValidation | None:
        if not _SEPARATORS.sub("", local_number or ""):
            self.annotation = None
            return None
        try:
            result = check(local_number, country, strict=self._strict)
        except NumberParseException:
            self.annotation = None
            return None
        self.annotation = result.error
        return result

    def cancel(self) -> None:
        self._debouncer.cancel()
