"""Wait between cycles, based on the market clock."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from alpaca_bot.models.market_models import MarketClock


@dataclass(frozen=True)
class PollingScheduler:
    """
    - market open: fixed polling interval
    - market closed with a known next open: sleep until then; a non-positive delay
      (clock skew, stale clock reading) becomes min_closed_wait
    - market closed, next open unknown: fixed fallback
    - clock unavailable: polling interval
    """

    polling_interval: timedelta = timedelta(seconds=15)
    closed_fallback: timedelta = timedelta(minutes=5)
    min_closed_wait: timedelta = timedelta(minutes=1)

    def next_wait(self, clock: Optional[MarketClock], now: datetime) -> timedelta:
        if clock is None or clock.is_open:
            return self.polling_interval
        if clock.next_open is None:
            return self.closed_fallback
        wait = clock.next_open - now
        if wait <= timedelta(0):
            return self.min_closed_wait
        return wait
