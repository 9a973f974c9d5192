"""Main trading engine loop (Alpaca, EMA crossover, 1m bars)."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from alpaca_bot.infrastructure.alpaca.alpaca_rest_client import AlpacaMarketDataClient, AlpacaTradingClient
from alpaca_bot.infrastructure.logging.logging import configure_logging, get_logger
from alpaca_bot.infrastructure.utils.config import TradingBotConfig, load_config
from alpaca_bot.infrastructure.utils.timeutils import Clock, SystemClock
from alpaca_bot.services.execution.cycle_runner import CycleRunner
from alpaca_bot.services.execution.order_executor import OrderExecutor
from alpaca_bot.services.market.bar_cache import BarCache
from alpaca_bot.services.monitoring.metrics import MetricsSnapshot
from alpaca_bot.services.monitoring.metrics_store import write_metrics
from alpaca_bot.services.risk.cooldown import CooldownTracker
from alpaca_bot.services.risk.position_sizer import PositionSizer
from alpaca_bot.services.scheduling.scheduler import PollingScheduler
from alpaca_bot.services.strategy.ema_crossover import EmaCrossoverStrategy


class TradingEngine:
    """Run loop: market clock -> cycle (when open) -> wait computed by the scheduler.

    The stop event is checked at the top of every iteration and ends the wait early.
    A cycle that raises is logged and the loop carries on after the polling interval.
    """

    def __init__(
        self,
        *,
        trading: AlpacaTradingClient,
        runner: CycleRunner,
        scheduler: PollingScheduler,
        clock: Optional[Clock] = None,
        metrics_path: Optional[Path] = None,
    ) -> None:
        self.trading = trading
        self.runner = runner
        self.scheduler = scheduler
        self.clock: Clock = clock or SystemClock()
        self.metrics_path = metrics_path
        self._log = get_logger("engine")

    @property
    def metrics(self) -> MetricsSnapshot:
        return self.runner.metrics

    async def run_once(self) -> timedelta:
        market = await self.trading.get_market_clock()
        now = self.clock.now()
        self.metrics.market_open = market.is_open
        self._log.info(
            "market_state",
            is_open=market.is_open,
            next_open=market.next_open.isoformat() if market.next_open else None,
            next_close=market.next_close.isoformat() if market.next_close else None,
        )
        if market.is_open:
            await self.runner.run_cycle()
        wait = self.scheduler.next_wait(market, self.clock.now() if market.is_open else now)
        if not market.is_open:
            self._log.info("market_closed_wait", seconds=int(wait.total_seconds()))
        return wait

    async def run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            wait = self.scheduler.polling_interval
            try:
                wait = await self.run_once()
            except asyncio.CancelledError:
                self._log.info("cycle_cancelled")
                raise
            except Exception as e:
                self._log.error("cycle_error", error=str(e), error_type=type(e).__name__)

            self._persist_metrics()

            try:
                await asyncio.wait_for(stop.wait(), timeout=wait.total_seconds())
            except asyncio.TimeoutError:
                pass
        self._log.info("engine_loop_exit")

    def _persist_metrics(self) -> None:
        if self.metrics_path is None:
            return
        try:
            write_metrics(self.metrics.to_dict(), self.metrics_path)
        except OSError as e:
            self._log.warning("metrics_persist_failed", error=str(e))


@dataclass
class EngineBundle:
    engine: TradingEngine
    trading: AlpacaTradingClient
    market_data: AlpacaMarketDataClient

    async def aclose(self) -> None:
        await self.trading.aclose()
        await self.market_data.aclose()


def build_engine(
    config: TradingBotConfig,
    *,
    trading: Optional[AlpacaTradingClient] = None,
    market_data: Optional[AlpacaMarketDataClient] = None,
    clock: Optional[Clock] = None,
) -> EngineBundle:
    clock = clock or SystemClock()
    tcfg = config.trading
    risk = tcfg.risk

    trading = trading or AlpacaTradingClient(
        config.alpaca.trading_base_url,
        config.alpaca.api_key_id,
        config.alpaca.api_secret_key,
        timeout_sec=config.alpaca.request_timeout_sec,
    )
    market_data = market_data or AlpacaMarketDataClient(
        config.alpaca.market_data_base_url,
        config.alpaca.api_key_id,
        config.alpaca.api_secret_key,
        feed=config.alpaca.data_feed,
        timeout_sec=config.alpaca.request_timeout_sec,
    )

    bar_cache = BarCache(max_bars=tcfg.max_bars)
    strategy = EmaCrossoverStrategy(
        short_period=tcfg.strategy.ema_short_period,
        long_period=tcfg.strategy.ema_long_period,
    )
    cooldowns = CooldownTracker(duration=timedelta(minutes=risk.cooldown_minutes), clock=clock)
    sizer = PositionSizer(
        position_notional_fraction=risk.position_notional_fraction,
        min_notional_usd=risk.min_notional_usd,
        cooldown_on_low_equity=risk.cooldown_on_low_equity,
    )
    executor = OrderExecutor(
        trading,
        bar_cache=bar_cache,
        cooldowns=cooldowns,
        sizer=sizer,
        take_profit_percent=risk.take_profit_percent,
        stop_loss_percent=risk.stop_loss_percent,
        trailing_stop_percent=risk.trailing_stop_percent,
        time_in_force=tcfg.time_in_force,
    )
    runner = CycleRunner(
        market_data=market_data,
        bar_cache=bar_cache,
        strategy=strategy.evaluate,
        executor=executor,
        symbols=tcfg.symbols,
        bars_seed=tcfg.bars_seed,
        clock=clock,
        metrics=MetricsSnapshot(environment=config.environment, symbols=list(tcfg.symbols)),
    )
    scheduler = PollingScheduler(
        polling_interval=timedelta(seconds=tcfg.scheduler.polling_interval_seconds),
        closed_fallback=timedelta(seconds=tcfg.scheduler.closed_market_fallback_seconds),
        min_closed_wait=timedelta(seconds=tcfg.scheduler.min_closed_wait_seconds),
    )
    engine = TradingEngine(
        trading=trading,
        runner=runner,
        scheduler=scheduler,
        clock=clock,
        metrics_path=Path(config.monitoring.metrics_path),
    )
    return EngineBundle(engine=engine, trading=trading, market_data=market_data)


async def run_engine(config_path: Path | None = None) -> None:
    config = load_config(config_path)
    configure_logging(config.log_level, config.log_format)
    log = get_logger("engine")
    log.info(
        "config_loaded",
        environment=config.environment,
        symbols=config.trading.symbols,
        key_len=len(config.alpaca.api_key_id),
    )
    if not config.has_real_credentials():
        log.warning("placeholder_credentials", hint="Set ALPACA__API_KEY_ID / ALPACA__API_SECRET_KEY in .env")

    bundle = build_engine(config)
    stop = asyncio.Event()

    try:
        await bundle.engine.runner.seed_all()

        task = asyncio.create_task(bundle.engine.run(stop))

        def _shutdown() -> None:
            log.info("shutdown_signal")
            stop.set()
            task.cancel()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _shutdown)
            except NotImplementedError:
                log.debug("signal_handler_unsupported", signal=str(sig))

        log.info("engine_started", symbols=config.trading.symbols, environment=config.environment)
        try:
            await task
        except asyncio.CancelledError:
            log.info("engine_cancelled")
    finally:
        await bundle.aclose()
        log.info("engine_stopped")
