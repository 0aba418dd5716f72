"""Tax rate table and calculator."""

from docengine.tax.calculator import (
    document_totals,
    line_totals,
    preview_tax,
    round_money,
    tax_amount,
    to_decimal,
    total_with_tax,
)
from docengine.tax.regimes import (
    TAX_REGIMES,
    TaxRegime,
    available_countries,
    get_tax_regime,
    is_supported_country,
    tax_rate_options,
)

__all__ = [
    "TAX_REGIMES",
    "TaxRegime",
    "available_countries",
    "document_totals",
    "get_tax_regime",
    "is_supported_country",
    "line_totals",
    "preview_tax",
    "round_money",
    "tax_amount",
    "tax_rate_options",
    "to_decimal",
    "total_with_tax",
]
