"""Bounded per-symbol 1m bar history."""

from __future__ import annotations

from collections import deque
from decimal import Decimal
from typing import Deque, Dict, Iterable, Optional, Tuple

from alpaca_bot.models.market_models import Bar

DEFAULT_MAX_BARS = 2000


class BarCache:
    """
    Keeps the latest `max_bars` bars per symbol, ascending by time.

    - seed() replaces the whole series (startup backfill)
    - add() appends one bar; a bar not newer than the last one is ignored,
      so polling the same latest bar twice is harmless
    - oldest bars are evicted first once the bound is reached
    """

    def __init__(self, max_bars: int = DEFAULT_MAX_BARS) -> None:
        if max_bars < 1:
            raise ValueError("max_bars must be >= 1")
        self._max_bars = int(max_bars)
        self._bars: Dict[str, Deque[Bar]] = {}

    @property
    def max_bars(self) -> int:
        return self._max_bars

    def _series(self, symbol: str) -> Deque[Bar]:
        key = symbol.upper()
        series = self._bars.get(key)
        if series is None:
            series = deque(maxlen=self._max_bars)
            self._bars[key] = series
        return series

    def seed(self, symbol: str, bars: Iterable[Bar]) -> None:
        series = self._series(symbol)
        series.clear()
        # one bar per timestamp, the last one given wins
        by_time = {b.time: b for b in bars}
        # deque(maxlen) drops from the left, so only the newest bars survive
        series.extend(sorted(by_time.values(), key=lambda b: b.time))

    def add(self, symbol: str, bar: Bar) -> bool:
        """Append bar. Returns False when it was not newer than the last bar."""
        series = self._series(symbol)
        # same time: repeated poll; older time: late bar that would break ordering
        if series and bar.time <= series[-1].time:
            return False
        series.append(bar)
        return True

    def get(self, symbol: str) -> Tuple[Bar, ...]:
        return tuple(self._bars.get(symbol.upper(), ()))

    def get_last_close(self, symbol: str) -> Optional[Decimal]:
        series = self._bars.get(symbol.upper())
        return series[-1].close if series else None

    def symbols(self) -> Tuple[str, ...]:
        return tuple(self._bars.keys())
