# services/currency.py
"""
Currency normalization and static conversion.

- No network calls
- Deterministic rates pivoted on EUR (update when needed)
- Unknown codes pass amounts through untouched instead of failing the caller
"""
import re
from typing import Iterable, Optional, Tuple

# Base = EUR (1.0). Units of each currency per one euro.
FX_TABLE = {
    "EUR": 1.0,
    "USD": 1.08,
    "GBP": 0.86,
    "JPY": 170.0,
    "CHF": 0.95,
    "SEK": 11.5,
    "NOK": 11.6,
    "DKK": 7.46,
    "PLN": 4.3,
    "CAD": 1.47,
    "AUD": 1.65,
}

SYMBOLS = {
    "€": "EUR",
    "$": "USD",
    "US$": "USD",
    "£": "GBP",
    "¥": "JPY",
    "CHF": "CHF",
    "KR": "SEK",
    "ZŁ": "PLN",
    "C$": "CAD",
    "CA$": "CAD",
    "A$": "AUD",
    "AU$": "AUD",
}

WORDS = {
    "euro": "EUR",
    "euros": "EUR",
    "dollar": "USD",
    "dollars": "USD",
    "us dollar": "USD",
    "us dollars": "USD",
    "pound": "GBP",
    "pounds": "GBP",
    "sterling": "GBP",
    "pound sterling": "GBP",
    "yen": "JPY",
    "franc": "CHF",
    "francs": "CHF",
    "swiss franc": "CHF",
    "krona": "SEK",
    "kronor": "SEK",
    "krone": "NOK",
    "kroner": "NOK",
    "zloty": "PLN",
    "canadian dollar": "CAD",
    "australian dollar": "AUD",
}

COUNTRY_CURRENCY = {
    # Eurozone
    "NL": "EUR", "NLD": "EUR", "NETHERLANDS": "EUR", "HOLLAND": "EUR",
    "DE": "EUR", "DEU": "EUR", "GERMANY": "EUR",
    "FR": "EUR", "FRA": "EUR", "FRANCE": "EUR",
    "ES": "EUR", "ESP": "EUR", "SPAIN": "EUR",
    "IT": "EUR", "ITA": "EUR", "ITALY": "EUR",
    "BE": "EUR", "BEL": "EUR", "BELGIUM": "EUR",
    "AT": "EUR", "AUT": "EUR", "AUSTRIA": "EUR",
    "IE": "EUR", "IRL": "EUR", "IRELAND": "EUR",
    "PT": "EUR", "PRT": "EUR", "PORTUGAL": "EUR",
    "FI": "EUR", "FIN": "EUR", "FINLAND": "EUR",
    "GR": "EUR", "GRC": "EUR", "GREECE": "EUR",
    "LU": "EUR", "LUX": "EUR", "LUXEMBOURG": "EUR",
    # Others
    "US": "USD", "USA": "USD", "UNITED STATES": "USD", "AMERICA": "USD",
    "GB": "GBP", "GBR": "GBP", "UK": "GBP", "UNITED KINGDOM": "GBP",
    "GREAT BRITAIN": "GBP", "ENGLAND": "GBP",
    "JP": "JPY", "JPN": "JPY", "JAPAN": "JPY",
    "CH": "CHF", "CHE": "CHF", "SWITZERLAND": "CHF",
    "SE": "SEK", "SWE": "SEK", "SWEDEN": "SEK",
    "NO": "NOK", "NOR": "NOK", "NORWAY": "NOK",
    "DK": "DKK", "DNK": "DKK", "DENMARK": "DKK",
    "PL": "PLN", "POL": "PLN", "POLAND": "PLN",
    "CA": "CAD", "CAN": "CAD", "CANADA": "CAD",
    "AU": "AUD", "AUS": "AUD", "AUSTRALIA": "AUD",
}


def normalize_code(raw) -> Optional[str]:
    """
    Canonicalize a currency symbol, ISO code or common word.

    Returns:
        Uppercase ISO 4217 code, or None if unrecognized. Never raises.
    """
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if not text:
        return None

    upper = text.upper()
    if upper in FX_TABLE:
        return upper
    if upper in SYMBOLS:
        return SYMBOLS[upper]

    lower = re.sub(r"\s+", " ", text.lower())
    if lower in WORDS:
        return WORDS[lower]
    return None


def currency_from_country(country) -> Optional[str]:
    """Best-effort default currency for an ISO2/ISO3 code or country name."""
    if not isinstance(country, str) or not country.strip():
        return None
    key = re.sub(r"\s+", " ", country.strip().upper())
    return COUNTRY_CURRENCY.get(key)


def detect_currency(text: Optional[str]) -> Optional[str]:
    """Find a currency hint inside free price text such as '€ 129,99' or '59 GBP'."""
    if not text:
        return None
    for symbol in ("US$", "C$", "CA$", "A$", "AU$", "€", "£", "¥", "$"):
        if symbol in text:
            return SYMBOLS[symbol]
    for token in re.findall(r"[A-Za-z]{3}", text):
        code = normalize_code(token)
        if code:
            return code
    return None


def estimate_total(amounts: Iterable[Tuple[Optional[float], Optional[str]]], to_code) -> Optional[float]:
    """
    Sum (amount, currency) pairs in *to_code*, rounded to whole units.
    Missing amounts are skipped; missing currencies count as *to_code*.
    Returns None when there is nothing to sum.
    """
    total = 0.0
    counted = 0
    for amount, code in amounts:
        if amount is None:
            continue
        total += convert(amount, code or to_code, to_code)
        counted += 1
    return float(round(total)) if counted else None


def convert(amount: float, from_code, to_code) -> float:
    """
    Convert an amount between currencies using the static EUR-pivot table.

    Rounds to whole minor units (two decimals) rather than whole units:
    whole-unit rounding would turn 100 JPY into 1 EUR and back into 170 JPY,
    while cents keep every round trip within one unit. If either code is
    unrecognized the original amount is returned unchanged.
    """
    source = normalize_code(from_code)
    target = normalize_code(to_code)
    if not source or not target:
        return amount
    if source == target:
        return round(amount, 2)
    in_eur = amount / FX_TABLE[source]
    return round(in_eur * FX_TABLE[target], 2)
