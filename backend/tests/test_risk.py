from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from alpaca_bot.models.trade_models import Account
from alpaca_bot.services.risk.cooldown import CooldownTracker
from alpaca_bot.services.risk.position_sizer import PositionSizer
from alpaca_bot.services.risk.tp_sl import compute_tp_sl_from_price


# --------- cooldown ---------
def test_cooldown_blocks_until_deadline(clock):
    tracker = CooldownTracker(duration=timedelta(minutes=5), clock=clock)
    entry = tracker.start_cooldown("aapl", "order submission failure")

    assert entry.symbol == "AAPL"
    assert entry.until == clock.now() + timedelta(minutes=5)
    assert tracker.is_on_cooldown("AAPL")

    clock.advance(timedelta(minutes=4, seconds=59))
    assert tracker.is_on_cooldown("AAPL")

    clock.advance(timedelta(seconds=1))
    assert not tracker.is_on_cooldown("AAPL")
    assert tracker.get("AAPL") is None


def test_cooldown_custom_duration_and_active_listing(clock):
    tracker = CooldownTracker(clock=clock)
    tracker.start_cooldown("AAPL", "insufficient buying power", duration=timedelta(seconds=30))
    tracker.start_cooldown("MSFT", "order submission failure")

    assert {e.symbol for e in tracker.active()} == {"AAPL", "MSFT"}
    clock.advance(timedelta(seconds=31))
    assert [e.symbol for e in tracker.active()] == ["MSFT"]
    assert tracker.get("MSFT").reason == "order submission failure"


def test_cooldown_restart_extends_deadline(clock):
    tracker = CooldownTracker(duration=timedelta(minutes=5), clock=clock)
    tracker.start_cooldown("AAPL", "first")
    clock.advance(timedelta(minutes=4))
    tracker.start_cooldown("AAPL", "second")
    clock.advance(timedelta(minutes=4))
    assert tracker.is_on_cooldown("AAPL")
    assert tracker.get("AAPL").reason == "second"


def test_cooldown_explicit_zero_duration_is_not_replaced_by_default(clock):
    tracker = CooldownTracker(duration=timedelta(minutes=5), clock=clock)
    entry = tracker.start_cooldown("AAPL", "manual", duration=timedelta(0))
    assert entry.until == clock.now()
    assert not tracker.is_on_cooldown("AAPL")


def test_cooldown_rejects_zero_duration():
    with pytest.raises(ValueError):
        CooldownTracker(duration=timedelta(0))


# --------- sizing ---------
def _sizer(**kw) -> PositionSizer:
    params = {"position_notional_fraction": 0.10, "min_notional_usd": 1.0}
    params.update(kw)
    return PositionSizer(**params)


def test_notional_capped_by_buying_power():
    size = _sizer().compute(Account(equity=Decimal("10000"), buying_power=Decimal("500")))
    assert size.allowed
    assert size.target == Decimal("1000")
    assert size.notional == Decimal("500.00")


def test_notional_is_equity_fraction_when_affordable():
    size = _sizer().compute(Account(equity=Decimal("1234.56"), buying_power=Decimal("5000")))
    assert size.allowed
    assert size.notional == Decimal("123.45")


def test_notional_never_rounds_above_buying_power():
    account = Account(equity=Decimal("10000"), buying_power=Decimal("500.006"))
    size = _sizer().compute(account)
    assert size.allowed
    assert size.notional == Decimal("500.00")
    assert size.notional <= account.buying_power


def test_min_notional_floor_applies():
    size = _sizer(min_notional_usd=5.0).compute(Account(equity=Decimal("20"), buying_power=Decimal("20")))
    assert size.allowed
    assert size.notional == Decimal("5.00")


def test_buying_power_below_floor_disqualifies():
    size = _sizer().compute(Account(equity=Decimal("10000"), buying_power=Decimal("0.50")))
    assert not size.allowed
    assert size.reason == "insufficient buying power"
    assert size.notional == Decimal("0")


def test_low_equity_only_disqualifies_behind_flag():
    account = Account(equity=Decimal("5"), buying_power=Decimal("100"))
    assert _sizer().compute(account).allowed

    size = _sizer(cooldown_on_low_equity=True).compute(account)
    assert not size.allowed
    assert size.reason == "insufficient equity"


# --------- TP / SL ---------
def test_tp_sl_rounded_to_cents():
    legs = compute_tp_sl_from_price(Decimal("187.335"), 0.02, 0.01)
    assert legs.take_profit_price == Decimal("191.08")
    assert legs.stop_loss_price == Decimal("185.46")


def test_tp_sl_requires_positive_price():
    with pytest.raises(ValueError):
        compute_tp_sl_from_price(Decimal("0"), 0.02, 0.01)
