from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import pytest

from alpaca_bot.models.market_models import Asset, Bar, MarketClock
from alpaca_bot.models.trade_models import Account, BracketOrderRequest, Position

T0 = datetime(2024, 3, 4, 14, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


def make_bar(minute: int, close, *, start: datetime = T0) -> Bar:
    c = Decimal(str(close))
    return Bar(time=start + timedelta(minutes=minute), open=c, high=c, low=c, close=c, volume=100)


def make_bars(closes: Sequence, *, start: datetime = T0) -> List[Bar]:
    return [make_bar(i, c, start=start) for i, c in enumerate(closes)]


class FakeTrading:
    """In-memory stand-in for AlpacaTradingClient."""

    def __init__(self) -> None:
        self.account = Account(equity=Decimal("1000"), buying_power=Decimal("1000"))
        self.positions: Dict[str, Position] = {}
        self.open_orders: Dict[str, int] = {}
        self.clock = MarketClock(is_open=True)
        self.assets: List[Asset] = []

        self.submitted: List[BracketOrderRequest] = []
        self.closed: List[str] = []
        self.clock_calls = 0

        self.fail_submit: Optional[Exception] = None
        self.fail_account: Optional[Exception] = None
        self.fail_position: Optional[Exception] = None
        self.fail_clock: Optional[Exception] = None
        # position created by a successful submit (simulated fill)
        self.fill_position: Optional[Position] = None

    async def get_account(self) -> Account:
        if self.fail_account:
            raise self.fail_account
        return self.account

    async def get_position(self, symbol: str) -> Optional[Position]:
        if self.fail_position:
            raise self.fail_position
        return self.positions.get(symbol)

    async def get_positions(self) -> List[Position]:
        return list(self.positions.values())

    async def has_open_position(self, symbol: str) -> bool:
        return await self.get_position(symbol) is not None

    async def has_open_orders(self, symbol: str) -> bool:
        return self.open_orders.get(symbol, 0) > 0

    async def submit_bracket_order(self, request: BracketOrderRequest) -> dict:
        if self.fail_submit:
            raise self.fail_submit
        self.submitted.append(request)
        if self.fill_position is not None:
            self.positions[request.symbol] = self.fill_position
        return {"id": f"order-{len(self.submitted)}"}

    async def close_position(self, symbol: str) -> None:
        self.closed.append(symbol)
        self.positions.pop(symbol, None)

    async def get_market_clock(self) -> MarketClock:
        self.clock_calls += 1
        if self.fail_clock:
            raise self.fail_clock
        return self.clock

    async def is_market_open(self) -> bool:
        return (await self.get_market_clock()).is_open

    async def get_assets(self) -> List[Asset]:
        return list(self.assets)

    async def aclose(self) -> None:
        pass


class FakeMarketData:
    """In-memory stand-in for AlpacaMarketDataClient."""

    def __init__(self) -> None:
        self.recent: Dict[str, List[Bar]] = {}
        self.latest: Dict[str, List[Optional[Bar]]] = {}
        self.daily: Dict[str, List[Bar]] = {}
        self.prices: Dict[str, Decimal] = {}
        self.fail_latest: Dict[str, Exception] = {}
        self.latest_calls: List[str] = []

    def queue_latest(self, symbol: str, *bars: Optional[Bar]) -> None:
        self.latest.setdefault(symbol, []).extend(bars)

    async def get_recent_bars(self, symbol: str, limit: int) -> List[Bar]:
        return list(self.recent.get(symbol, []))[-limit:]

    async def get_latest_bar(self, symbol: str) -> Optional[Bar]:
        self.latest_calls.append(symbol)
        if symbol in self.fail_latest:
            raise self.fail_latest[symbol]
        queue = self.latest.get(symbol) or []
        if not queue:
            return None
        # the last queued bar keeps being returned, like the real endpoint between minutes
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def get_daily_bars(self, symbol: str, days: int) -> List[Bar]:
        return list(self.daily.get(symbol, []))[-days:]

    async def get_last_trade_price(self, symbol: str) -> Optional[Decimal]:
        return self.prices.get(symbol)

    async def aclose(self) -> None:
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def trading() -> FakeTrading:
    return FakeTrading()


@pytest.fixture
def market_data() -> FakeMarketData:
    return FakeMarketData()
