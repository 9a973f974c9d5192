"""Scan for cheap tradable symbols (candidates for the symbol list)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from decimal import Decimal
from typing import List, Optional, Sequence

from alpaca_bot.infrastructure.alpaca.alpaca_rest_client import AlpacaMarketDataClient, AlpacaTradingClient
from alpaca_bot.infrastructure.logging.logging import get_logger
from alpaca_bot.infrastructure.utils.timeutils import Clock, SystemClock


@dataclass(frozen=True)
class ScanCandidate:
    symbol: str
    price_usd: Decimal


class AssetScanner:
    """
    Lists symbols whose last trade is below a USD threshold, cheapest first.

    Only runs inside the local-hour window [start_hour, end_hour); outside it
    (or when disabled) the scan returns nothing.
    """

    def __init__(
        self,
        trading: AlpacaTradingClient,
        market_data: AlpacaMarketDataClient,
        *,
        price_threshold_usd: float = 50.0,
        start_hour_local: int = 8,
        end_hour_local: int = 23,
        enabled: bool = True,
        symbols: Optional[Sequence[str]] = None,
        clock: Optional[Clock] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.trading = trading
        self.market_data = market_data
        self.threshold = Decimal(str(price_threshold_usd))
        self.start_hour = int(start_hour_local)
        self.end_hour = int(end_hour_local)
        self.enabled = bool(enabled)
        self.symbols = [s.upper() for s in symbols] if symbols else None
        self._clock: Clock = clock or SystemClock()
        self._tz = tz
        self._log = get_logger("asset_scanner")

    def in_window(self) -> bool:
        local = self._clock.now().astimezone(self._tz)
        return self.start_hour <= local.hour < self.end_hour

    async def scan(self) -> List[ScanCandidate]:
        if not self.enabled:
            self._log.debug("scanner_disabled")
            return []
        if not self.in_window():
            self._log.debug("scanner_outside_window", start=self.start_hour, end=self.end_hour)
            return []

        self._log.info("scan_start", threshold=self.threshold, start=self.start_hour, end=self.end_hour)
        if self.symbols:
            symbols = list(self.symbols)
        else:
            assets = await self.trading.get_assets()
            symbols = [a.symbol for a in assets if a.tradable]

        candidates: List[ScanCandidate] = []
        for symbol in symbols:
            price = await self.market_data.get_last_trade_price(symbol)
            if price is None:
                continue
            if price < self.threshold:
                candidates.append(ScanCandidate(symbol=symbol, price_usd=price))

        candidates.sort(key=lambda c: c.price_usd)
        if not candidates:
            self._log.info("scan_result_empty", threshold=self.threshold)
        else:
            self._log.info("scan_result", count=len(candidates), symbols=[c.symbol for c in candidates])
        return candidates
