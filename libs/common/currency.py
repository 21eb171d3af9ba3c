"""Currency helpers for GoCart.

Storage unit: pesos as ``Numeric(12, 2)`` (e.g. Decimal("1500.00") = ₱1,500).
Discounts are granted in whole pesos.
Xendit invoice amounts are sent as a plain JSON number in pesos.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

# ─── constants ───────────────────────────────────────────────────────────────

CENTAVO = Decimal("0.01")
WHOLE_PESO = Decimal("1")
ZERO = Decimal("0")


# ─── helpers ─────────────────────────────────────────────────────────────────


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize to centavos (round half-up)."""
    return Decimal(str(value)).quantize(CENTAVO, rounding=ROUND_HALF_UP)


def round_whole_pesos(value: Decimal | int | float | str) -> Decimal:
    """Round half-up to whole pesos, kept at 2 places for Numeric columns."""
    whole = Decimal(str(value)).quantize(WHOLE_PESO, rounding=ROUND_HALF_UP)
    return to_money(whole)


def to_provider_amount(pesos: Decimal) -> int | float:
    """JSON number for Xendit: an int when there are no centavos."""
    amount = to_money(pesos)
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


def format_peso(pesos: Decimal | int | float) -> str:
    """Human label used in rejection messages, e.g. ``₱1,000``."""
    amount = to_money(pesos)
    if amount == amount.to_integral_value():
        return f"₱{int(amount):,}"
    return f"₱{amount:,.2f}"
