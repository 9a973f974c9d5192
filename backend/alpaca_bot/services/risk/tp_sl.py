"""Take profit / stop loss prices for bracket orders."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal

CENT = Decimal("0.01")


@dataclass(frozen=True)
class TpSlPrices:
    take_profit_price: Decimal
    stop_loss_price: Decimal


def compute_tp_sl_from_price(
    reference_price: Decimal,
    take_profit_percent: float,
    stop_loss_percent: float,
) -> TpSlPrices:
    """Compute TP/SL limit and stop prices around the entry reference price.

    Percentages are fractions (0.02 = 2%). Prices are rounded to cents
    because Alpaca rejects sub-penny prices for most equities.
    """
    if reference_price <= 0:
        raise ValueError("reference_price must be > 0")
    tp = reference_price * (Decimal(1) + Decimal(str(take_profit_percent)))
    sl = reference_price * (Decimal(1) - Decimal(str(stop_loss_percent)))
    return TpSlPrices(
        take_profit_price=tp.quantize(CENT, rounding=ROUND_HALF_EVEN),
        stop_loss_price=sl.quantize(CENT, rounding=ROUND_HALF_EVEN),
    )
