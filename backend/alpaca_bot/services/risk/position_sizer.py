"""Notional sizing from account equity, capped by buying power."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

from alpaca_bot.models.trade_models import Account

CENT = Decimal("0.01")


@dataclass(frozen=True)
class SizeDecision:
    allowed: bool
    notional: Decimal
    target: Decimal
    reason: str


class PositionSizer:
    """Compute the USD notional of a new long entry.

    Notes:
    - target = max(equity * fraction, min_notional): risk-based size with a floor
    - notional = min(buying_power, target): never more than the broker allows
    - buying_power below the floor disqualifies the entry (caller starts a cooldown)
    - with cooldown_on_low_equity, an equity-based target below the floor also disqualifies
    """

    def __init__(
        self,
        *,
        position_notional_fraction: float,
        min_notional_usd: float,
        cooldown_on_low_equity: bool = False,
    ) -> None:
        self.fraction = Decimal(str(position_notional_fraction))
        self.min_notional = Decimal(str(min_notional_usd))
        self.cooldown_on_low_equity = bool(cooldown_on_low_equity)

    def compute(self, account: Account) -> SizeDecision:
        risk_target = account.equity * self.fraction
        target = max(risk_target, self.min_notional)
        notional = min(account.buying_power, target).quantize(CENT, rounding=ROUND_DOWN)

        if account.buying_power < self.min_notional:
            return SizeDecision(False, Decimal("0"), target, "insufficient buying power")

        if self.cooldown_on_low_equity and risk_target < self.min_notional:
            return SizeDecision(False, Decimal("0"), target, "insufficient equity")

        return SizeDecision(True, notional, target, "ok")
