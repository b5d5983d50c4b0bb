"""Phone number utility functions for West-African numbers."""

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class CountryPhoneRule:
    """Dialing prefix and national number pattern for a country."""

    code: str
    prefix: str
    pattern: re.Pattern[str]


COUNTRY_RULES: dict[str, CountryPhoneRule] = {
    "SN": CountryPhoneRule("SN", "221", re.compile(r"^(?:7[0-8])\d{7}$")),
    "CI": CountryPhoneRule("CI", "225", re.compile(r"^(?:0[1-8]|[457])\d{7}$")),
    "BF": CountryPhoneRule("BF", "226", re.compile(r"^[567]\d{7}$")),
    "ML": CountryPhoneRule("ML", "223", re.compile(r"^[67]\d{7}$")),
    "GN": CountryPhoneRule("GN", "224", re.compile(r"^6\d{8}$")),
}

DEFAULT_COUNTRY = "SN"


def _digits(phone: str) -> str:
    return re.sub(r"\D", "", phone)


def normalize_phone(phone: str | None, country: str = DEFAULT_COUNTRY) -> str:
    """Normalize a phone number to E.164.

    The number may carry its own international prefix (with `+` or `00`);
    otherwise `country` decides the prefix. Returns an empty string when the
    number does not match any known national format.

    Examples:
        >>> normalize_phone("77 123 45 67")
        '+221771234567'
        >>> normalize_phone("+221 77-123-45-67")
        '+221771234567'
        >>> normalize_phone("00225 07 12 34 56 7")
        '+225071234567'
        >>> normalize_phone("12345")
        ''
        >>> normalize_phone(None)
        ''
    """
    if not phone:
        return ""

    digits = _digits(phone)
    has_prefix = phone.strip().startswith(("+", "00"))
    if digits.startswith("00"):
        digits = digits[2:]

    if has_prefix:
        for rule in COUNTRY_RULES.values():
            if digits.startswith(rule.prefix):
                national = digits[len(rule.prefix):]
                if rule.pattern.match(national):
                    return f"+{rule.prefix}{national}"
        return ""

    rule = COUNTRY_RULES.get(country.upper(), COUNTRY_RULES[DEFAULT_COUNTRY])
    # Country prefix typed without "+"
    if digits.startswith(rule.prefix) and rule.pattern.match(digits[len(rule.prefix):]):
        return f"+{digits}"
    if rule.pattern.match(digits):
        return f"+{rule.prefix}{digits}"
    # Leading trunk zero ("077 123 45 67")
    national = digits.lstrip("0")
    if national != digits and rule.pattern.match(national):
        return f"+{rule.prefix}{national}"
    return ""


def is_valid_phone(phone: str | None, country: str = DEFAULT_COUNTRY) -> bool:
    """Check whether a phone number can be normalized."""
    return bool(normalize_phone(phone, country))


def format_phone(phone: str) -> str:
    """Format an E.164 Senegalese number for display.

    >>> format_phone("+221771234567")
    '+221 77 123 45 67'
    """
    digits = _digits(phone)
    if digits.startswith("221") and len(digits) == 12:
        national = digits[3:]
        return f"+221 {national[:2]} {national[2:5]} {national[5:7]} {national[7:]}"
    return phone
