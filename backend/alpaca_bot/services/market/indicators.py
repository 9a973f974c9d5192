"""EMA series with simple-average warm-up (Decimal math)."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Sequence


def _ema(prev: Decimal, value: Decimal, k: Decimal) -> Decimal:
    # same as value * k + prev * (1 - k), but exact when value == prev
    return prev + k * (value - prev)


def ema_series(values: Sequence[Decimal], period: int) -> List[Decimal]:
    """Return one EMA value per input value.

    While fewer than `period` values have been seen, the EMA is the simple
    average of everything seen so far (so index period-1 holds the SMA seed).
    From index `period` on, standard exponential smoothing with k = 2 / (period + 1).
    """
    if period <= 0:
        raise ValueError("period must be > 0")

    out: List[Decimal] = []
    if not values:
        return out

    k = Decimal(2) / Decimal(period + 1)
    running_sum = Decimal(0)
    for i, value in enumerate(values):
        price = Decimal(value)
        if i < period:
            running_sum += price
            out.append(running_sum / (i + 1))
        else:
            out.append(_ema(out[-1], price, k))
    return out
