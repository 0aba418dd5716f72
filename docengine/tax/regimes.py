"""
Tax Rate Table

A process-wide, read-only mapping from country code to its tax regime.
Loaded once at import time and never mutated, so it needs no locking.

Rates are percentages. A regime has a default rate used whenever no rate
key (or an unknown one) is supplied.
"""

from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from docengine.errors import UnsupportedCountryError


class TaxRegime(BaseModel):
    """Tax configuration (rates and currency) of one country."""
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    currency: str = Field(..., min_length=3, max_length=3)
    symbol: str
    default_rate: Decimal = Field(..., ge=0)
    rates: Mapping[str, Decimal]

    def rate_for(self, rate_key: Optional[str] = None) -> Decimal:
        """Rate for `rate_key`, or the default rate when the key is absent or unknown."""
        if rate_key is not None and rate_key in self.rates:
            return self.rates[rate_key]
        return self.default_rate


def _regime(
    code: str,
    name: str,
    currency: str,
    symbol: str,
    default_rate: str,
    rates: dict[str, str],
) -> TaxRegime:
    return TaxRegime(
        code=code,
        name=name,
        currency=currency,
        symbol=symbol,
        default_rate=Decimal(default_rate),
        rates=MappingProxyType({key: Decimal(rate) for key, rate in rates.items()}),
    )


TAX_REGIMES: Mapping[str, TaxRegime] = MappingProxyType({
    # Sales tax varies by state; no state key means no tax.
    "USA": _regime(
        "USA", "United States", "USD", "$", "0",
        {
            "CA": "8.25",
            "NY": "8.875",
            "TX": "6.25",
            "FL": "6.0",
            "IL": "6.25",
            "PA": "6.0",
            "OH": "5.75",
            "GA": "4.0",
            "NC": "4.75",
            "MI": "6.0",
        },
    ),
    "FRANCE": _regime(
        "FRANCE", "France", "EUR", "€", "20.0",
        {
            "STANDARD": "20.0",
            "REDUCED": "10.0",
            "SUPER_REDUCED": "5.5",
            "ZERO": "0.0",
        },
    ),
    # No VAT in Monaco
    "MONACO": _regime(
        "MONACO", "Monaco", "EUR", "€", "0.0",
        {
            "STANDARD": "0.0",
        },
    ),
})


# Display labels for rate keys, per country.
_FRANCE_LABELS = {
    "STANDARD": "TVA Standard (20%)",
    "REDUCED": "TVA Réduite (10%)",
    "SUPER_REDUCED": "TVA Super Réduite (5.5%)",
    "ZERO": "TVA Zéro (0%)",
}


def get_tax_regime(country_code: str) -> TaxRegime:
    """
    Look up the regime for a country.

    Raises:
        UnsupportedCountryError: If the country has no registered regime.
            Never falls back to another country.
    """
    try:
        return TAX_REGIMES[country_code]
    except (KeyError, TypeError):
        raise UnsupportedCountryError(country_code)


def is_supported_country(country_code: str) -> bool:
    return isinstance(country_code, str) and country_code in TAX_REGIMES


def available_countries() -> list[dict]:
    """Summary of every registered regime, for country pickers."""
    return [
        {
            "code": regime.code,
            "name": regime.name,
            "currency": regime.currency,
            "symbol": regime.symbol,
            "default_rate": regime.default_rate,
        }
        for regime in TAX_REGIMES.values()
    ]


def tax_rate_options(country_code: str) -> list[dict]:
    """
    Selectable rate keys of a country with a display label.

    Returns:
        [{"value": key, "label": label, "rate": Decimal}, ...]
    """
    regime = get_tax_regime(country_code)
    options = []
    for key, rate in regime.rates.items():
        if country_code == "USA":
            label = f"{key} ({format(rate.normalize(), 'f')}%)"
        elif country_code == "FRANCE":
            label = _FRANCE_LABELS.get(key, key)
        elif country_code == "MONACO":
            label = "Pas de TVA (0%)"
        else:
            label = key
        options.append({"value": key, "label": label, "rate": rate})
    return options
