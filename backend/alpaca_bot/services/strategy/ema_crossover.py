"""EMA crossover strategy (long-only entries, exits on bearish cross)."""

from __future__ import annotations

from typing import Callable, Sequence

from alpaca_bot.models.market_models import Bar
from alpaca_bot.models.trade_models import TradeDecision
from alpaca_bot.services.market.indicators import ema_series

# Any (symbol, bars) -> TradeDecision callable can drive the engine
Strategy = Callable[[str, Sequence[Bar]], TradeDecision]


class EmaCrossoverStrategy:
    """
    Crossover of a short EMA over a long EMA on 1m closes:
    - BUY when short crosses above long on the last bar
    - SELL when short crosses below long on the last bar
    - HOLD otherwise

    Stateless: both EMA series are recomputed over the full window on every call.
    """

    def __init__(self, *, short_period: int = 5, long_period: int = 20) -> None:
        if short_period <= 1:
            raise ValueError("short_period must be > 1")
        if long_period <= 1:
            raise ValueError("long_period must be > 1")
        self.short_period = int(short_period)
        self.long_period = int(long_period)

    @property
    def min_bars(self) -> int:
        return max(self.short_period, self.long_period) + 2

    def evaluate(self, symbol: str, bars: Sequence[Bar]) -> TradeDecision:
        if len(bars) < self.min_bars:
            return TradeDecision(
                action="HOLD",
                reason="insufficient bars",
                last_close=bars[-1].close if bars else None,
            )

        closes = [b.close for b in bars]
        ema_s = ema_series(closes, self.short_period)
        ema_l = ema_series(closes, self.long_period)

        last = closes[-1]
        prev_short, prev_long = ema_s[-2], ema_l[-2]
        curr_short, curr_long = ema_s[-1], ema_l[-1]

        # ties only count on the "prev" side, so a flat stretch fires once at divergence
        crossed_up = prev_short <= prev_long and curr_short > curr_long
        crossed_down = prev_short >= prev_long and curr_short < curr_long

        if crossed_up:
            return TradeDecision(
                action="BUY",
                reference_price=last,
                reason=f"EMA{self.short_period} crossed above EMA{self.long_period}",
                last_close=last,
                ema_short=curr_short,
                ema_long=curr_long,
            )
        if crossed_down:
            return TradeDecision(
                action="SELL",
                reference_price=last,
                reason=f"EMA{self.short_period} crossed below EMA{self.long_period}",
                last_close=last,
                ema_short=curr_short,
                ema_long=curr_long,
            )
        return TradeDecision(
            action="HOLD",
            reason="no crossover",
            last_close=last,
            ema_short=curr_short,
            ema_long=curr_long,
        )

    __call__ = evaluate
