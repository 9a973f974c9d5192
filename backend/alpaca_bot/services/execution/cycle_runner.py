"""One evaluation pass over all symbols: refresh bar -> cache -> strategy -> orders."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from alpaca_bot.infrastructure.alpaca.alpaca_rest_client import AlpacaMarketDataClient
from alpaca_bot.infrastructure.logging.logging import get_logger, log_context
from alpaca_bot.infrastructure.utils.timeutils import Clock, SystemClock
from alpaca_bot.services.execution.order_executor import OrderExecutor
from alpaca_bot.services.market.bar_cache import BarCache
from alpaca_bot.services.monitoring.metrics import MetricsSnapshot, SymbolRow
from alpaca_bot.services.strategy.ema_crossover import Strategy


@dataclass
class CycleReport:
    started_at: datetime
    duration_ms: int = 0
    rows: List[SymbolRow] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


def _fmt(value: Optional[Decimal], places: str = "0.00001") -> Optional[str]:
    if value is None:
        return None
    text = format(value.quantize(Decimal(places)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class CycleRunner:
    """Drives the per-symbol state machine once per cycle.

    Symbols run sequentially; a failure in one symbol is logged and recorded
    in the report, the others are still evaluated. Cancellation propagates.
    """

    def __init__(
        self,
        *,
        market_data: AlpacaMarketDataClient,
        bar_cache: BarCache,
        strategy: Strategy,
        executor: OrderExecutor,
        symbols: Sequence[str],
        bars_seed: int = 100,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsSnapshot] = None,
    ) -> None:
        self.market_data = market_data
        self.bar_cache = bar_cache
        self.strategy = strategy
        self.executor = executor
        self.symbols = [s.upper() for s in symbols]
        self.bars_seed = int(bars_seed)
        self.clock: Clock = clock or SystemClock()
        self.metrics = metrics or MetricsSnapshot(symbols=list(self.symbols))
        self._log = get_logger("cycle")

    async def seed_all(self) -> Dict[str, int]:
        """Backfill every symbol's cache. Errors here are start-up errors and propagate."""
        seeded: Dict[str, int] = {}
        for symbol in self.symbols:
            self._log.debug("seeding_bars", symbol=symbol, limit=self.bars_seed)
            bars = await self.market_data.get_recent_bars(symbol, self.bars_seed)
            self.bar_cache.seed(symbol, bars)
            seeded[symbol] = len(self.bar_cache.get(symbol))
            if bars:
                series = self.bar_cache.get(symbol)
                self._log.info(
                    "bars_seeded",
                    symbol=symbol,
                    count=len(series),
                    start=series[0].time.isoformat(),
                    end=series[-1].time.isoformat(),
                )
            else:
                self._log.warning("no_seed_bars", symbol=symbol)
        return seeded

    async def run_cycle(self) -> CycleReport:
        started = self.clock.now()
        report = CycleReport(started_at=started)
        self._log.info("cycle_start", at=started.isoformat(), symbols=self.symbols)

        for symbol in self.symbols:
            with log_context(cycle=self.metrics.cycles + 1, symbol=symbol):
                try:
                    row = await self._process_symbol(symbol)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self._log.error("symbol_cycle_error", error=str(e), error_type=type(e).__name__)
                    report.errors[symbol] = str(e)
                    row = SymbolRow(symbol=symbol, decision="ERROR", note=type(e).__name__)
                report.rows.append(row)
                fields = asdict(row)
                fields.pop("symbol")
                self._log.info("symbol_evaluated", **fields)

        finished = self.clock.now()
        report.duration_ms = int((finished - started).total_seconds() * 1000)
        self._log.info("cycle_end", duration_ms=report.duration_ms, errors=len(report.errors))
        self._update_metrics(report)
        return report

    async def _process_symbol(self, symbol: str) -> SymbolRow:
        bar = await self.market_data.get_latest_bar(symbol)
        if bar is None:
            last = self.bar_cache.get_last_close(symbol)
            return SymbolRow(symbol=symbol, close=_fmt(last), decision="NO DATA", note="no latest bar")

        added = self.bar_cache.add(symbol, bar)
        self._log.debug(
            "bar_1m",
            time=bar.time.isoformat(),
            o=bar.open,
            h=bar.high,
            l=bar.low,
            c=bar.close,
            v=bar.volume,
            new=added,
        )

        bars = self.bar_cache.get(symbol)
        decision = self.strategy(symbol, bars)

        change_abs: Optional[Decimal] = None
        change_pct: Optional[Decimal] = None
        if len(bars) >= 2 and bars[-2].close != 0:
            change_abs = bars[-1].close - bars[-2].close
            change_pct = change_abs / bars[-2].close * 100

        row = SymbolRow(
            symbol=symbol,
            close=_fmt(bars[-1].close if bars else None),
            change_abs=_fmt(change_abs),
            change_pct=_fmt(change_pct),
            decision=decision.action,
            note=decision.reason,
        )

        if decision.action == "BUY":
            result = await self.executor.try_enter_long(symbol, decision)
            row.decision = "BUY" if result.status == "submitted" else f"BUY ({result.status})"
            row.note = result.reason
        elif decision.action == "SELL":
            exit_result = await self.executor.try_exit_long(symbol)
            row.decision = "SELL" if exit_result.status == "closed" else "SELL (no position)"
            if exit_result.pnl_usd is not None:
                row.note = f"pnl~{_fmt(exit_result.pnl_usd, '0.01')} USD"
            else:
                row.note = exit_result.reason
        return row

    def _update_metrics(self, report: CycleReport) -> None:
        m = self.metrics
        m.cycles += 1
        m.last_cycle_started_at = report.started_at.isoformat()
        m.last_cycle_ms = report.duration_ms
        for row in report.rows:
            m.last_rows[row.symbol] = asdict(row)
        m.cooldowns = [
            {"symbol": e.symbol, "until": e.until.isoformat(), "reason": e.reason}
            for e in self.executor.cooldowns.active()
        ]
