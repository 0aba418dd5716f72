"""
Tax Calculator

Pure functions: no I/O, no hidden state. Calling any of them twice with
the same input gives the same output.

ROUNDING POLICY (two stages):
1. Each line's subtotal, tax and total are rounded half-up to the cent,
   each from the unrounded values.
2. A document's subtotal and tax are the sums of the already-rounded line
   values, each sum rounded again. The document total is the rounded sum
   of those two, so `total == subtotal + tax_amount` always holds at
   document level.

Stage 1 rounds the line total from unrounded figures. For a half-cent
line (1 x 0.025 at 20%: 0.025 + 0.005) this gives 0.03, while the rounded
subtotal and tax add up to 0.04. The line total is kept as computed.

Document totals are NOT obtained by taxing the grand subtotal. The two
approaches can differ by a cent; stored documents rely on stage 1 + 2.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Union

from docengine.errors import InvalidInputError
from docengine.models.document import LineItemInput, Totals
from docengine.tax.regimes import get_tax_regime

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    """
    Convert a caller-supplied amount to Decimal.

    Floats go through str() so that 0.1 becomes Decimal("0.1"),
    not its binary approximation.
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"Not a number: {value!r}")
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise InvalidInputError(f"Not a finite amount: {value!r}")
    return result


def round_money(value: Number) -> Decimal:
    """Round half-up to the cent."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def tax_amount(
    amount: Number,
    country_code: str,
    rate_key: Optional[str] = None,
) -> Decimal:
    """
    Tax due on `amount`. Not rounded.

    Uses the rate of `rate_key` when the country's regime has that key,
    otherwise the regime's default rate.

    Raises:
        UnsupportedCountryError: Unknown country code.
    """
    regime = get_tax_regime(country_code)
    rate = regime.rate_for(rate_key)
    return to_decimal(amount) * rate / HUNDRED


def total_with_tax(
    amount: Number,
    country_code: str,
    rate_key: Optional[str] = None,
) -> Decimal:
    """amount + tax, not rounded."""
    return to_decimal(amount) + tax_amount(amount, country_code, rate_key)


def line_totals(
    quantity: Number,
    unit_price: Number,
    country_code: str,
    rate_key: Optional[str] = None,
) -> Totals:
    """
    Subtotal, tax and total of one line, each rounded to the cent.

    These rounded values are what gets persisted on the line.
    """
    subtotal = to_decimal(quantity) * to_decimal(unit_price)
    tax = tax_amount(subtotal, country_code, rate_key)
    total = subtotal + tax

    return Totals(
        subtotal=round_money(subtotal),
        tax_amount=round_money(tax),
        total=round_money(total),
    )


def document_totals(
    lines: Iterable[Any],
    country_code: str,
    rate_key: Optional[str] = None,
) -> Totals:
    """
    Aggregate totals of a document.

    Each line is totalled with line_totals(); the rounded line subtotals
    and taxes are summed independently and each sum is rounded again.
    The total is the rounded sum of those two figures.

    Args:
        lines: LineItemInput objects, or anything with `quantity` and
               `unit_price` attributes / keys.
    """
    # The regime lookup happens even for an empty line set so that an
    # unsupported country is never silently accepted.
    get_tax_regime(country_code)

    subtotal = Decimal("0")
    tax = Decimal("0")
    for line in lines:
        quantity, unit_price = _line_inputs(line)
        totals = line_totals(quantity, unit_price, country_code, rate_key)
        subtotal += totals.subtotal
        tax += totals.tax_amount

    subtotal = round_money(subtotal)
    tax = round_money(tax)
    return Totals(
        subtotal=subtotal,
        tax_amount=tax,
        total=round_money(subtotal + tax),
    )


def preview_tax(
    amount: Number,
    country_code: str,
    rate_key: Optional[str] = None,
) -> dict[str, Decimal]:
    """
    Tax preview of a bare amount for client-side forms.

    Returns the amount as given, with tax and total rounded to the cent.
    """
    return {
        "amount": to_decimal(amount),
        "tax_amount": round_money(tax_amount(amount, country_code, rate_key)),
        "total": round_money(total_with_tax(amount, country_code, rate_key)),
    }


def _line_inputs(line: Any) -> tuple[Number, Number]:
    if isinstance(line, LineItemInput):
        return line.quantity, line.unit_price
    if isinstance(line, dict):
        try:
            return line["quantity"], line["unit_price"]
        except KeyError as e:
            raise InvalidInputError(f"Line is missing {e.args[0]}")
    return line.quantity, line.unit_price
