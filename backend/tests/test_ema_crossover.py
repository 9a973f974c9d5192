from __future__ import annotations

from decimal import Decimal
from typing import List

import pytest

from alpaca_bot.services.market.indicators import ema_series
from alpaca_bot.services.strategy.ema_crossover import EmaCrossoverStrategy
from conftest import make_bars


def _decisions(strategy: EmaCrossoverStrategy, closes) -> List[str]:
    bars = make_bars(closes)
    return [strategy.evaluate("AAPL", bars[:n]).action for n in range(1, len(bars) + 1)]


def test_ema_warmup_is_running_mean_then_smoothing():
    values = [Decimal(v) for v in ("1", "2", "3", "4")]
    out = ema_series(values, 3)

    assert out[0] == Decimal("1")
    assert out[1] == Decimal("1.5")
    assert out[2] == Decimal("2")  # SMA of the first three
    # k = 2 / 4 = 0.5
    assert out[3] == Decimal("3")


def test_ema_of_flat_series_is_exact():
    out = ema_series([Decimal("100")] * 40, 20)
    assert all(v == Decimal("100") for v in out)


def test_ema_rejects_non_positive_period():
    with pytest.raises(ValueError):
        ema_series([Decimal("1")], 0)


def test_hold_while_warming_up():
    strategy = EmaCrossoverStrategy(short_period=5, long_period=20)
    bars = make_bars([100 + i for i in range(21)])

    decision = strategy.evaluate("AAPL", bars)
    assert decision.action == "HOLD"
    assert decision.reason == "insufficient bars"
    assert decision.last_close == Decimal("120")
    assert decision.ema_short is None


def test_hold_on_empty_input():
    decision = EmaCrossoverStrategy().evaluate("AAPL", [])
    assert decision.action == "HOLD"
    assert decision.last_close is None


def test_single_buy_on_rise_after_flat_warmup():
    strategy = EmaCrossoverStrategy(short_period=5, long_period=20)
    closes = [100] * 22 + [101, 102, 103, 104, 105, 106]

    actions = _decisions(strategy, closes)
    assert actions.count("BUY") == 1
    assert actions.count("SELL") == 0
    assert actions.index("BUY") == 22


def test_single_sell_on_fall_after_flat_warmup():
    strategy = EmaCrossoverStrategy(short_period=5, long_period=20)
    closes = [100] * 22 + [99, 98, 97, 96, 95]

    actions = _decisions(strategy, closes)
    assert actions.count("SELL") == 1
    assert actions.count("BUY") == 0
    assert actions.index("SELL") == 22


def test_buy_decision_carries_reference_and_diagnostics():
    strategy = EmaCrossoverStrategy(short_period=5, long_period=20)
    decision = strategy.evaluate("AAPL", make_bars([100] * 24 + [101]))

    assert decision.action == "BUY"
    assert decision.reference_price == Decimal("101")
    assert decision.reason == "EMA5 crossed above EMA20"
    assert decision.ema_short > decision.ema_long


def test_no_crossover_when_flat():
    decision = EmaCrossoverStrategy().evaluate("AAPL", make_bars([50] * 30))
    assert decision.action == "HOLD"
    assert decision.reason == "no crossover"
    assert decision.ema_short == decision.ema_long == Decimal("50")


def test_strategy_is_a_plain_callable():
    strategy = EmaCrossoverStrategy(short_period=3, long_period=6)
    bars = make_bars([10] * 8 + [11])
    assert strategy("X", bars) == strategy.evaluate("X", bars)
    assert strategy.min_bars == 8


@pytest.mark.parametrize("short, long", [(1, 20), (5, 1)])
def test_invalid_periods_rejected(short, long):
    with pytest.raises(ValueError):
        EmaCrossoverStrategy(short_period=short, long_period=long)
