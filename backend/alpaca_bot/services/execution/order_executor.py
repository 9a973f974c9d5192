"""Long entry / exit execution with cooldown and duplicate-order guards."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal, Optional

from alpaca_bot.infrastructure.alpaca.alpaca_rest_client import AlpacaTradingClient
from alpaca_bot.infrastructure.logging.logging import get_logger
from alpaca_bot.models.trade_models import BracketOrderRequest, TradeDecision
from alpaca_bot.services.market.bar_cache import BarCache
from alpaca_bot.services.risk.cooldown import CooldownTracker
from alpaca_bot.services.risk.position_sizer import PositionSizer
from alpaca_bot.services.risk.tp_sl import compute_tp_sl_from_price


EntryStatus = Literal["submitted", "cooldown", "already_open", "disqualified"]
ExitStatus = Literal["closed", "no_position"]


class OrderSubmissionError(RuntimeError):
    pass


@dataclass(frozen=True)
class EntryResult:
    status: EntryStatus
    reason: str
    notional: Optional[Decimal] = None
    entry_price: Optional[Decimal] = None
    has_position: Optional[bool] = None
    has_open_orders: Optional[bool] = None


@dataclass(frozen=True)
class ExitResult:
    status: ExitStatus
    reason: str
    quantity: Optional[Decimal] = None
    entry_price: Optional[Decimal] = None
    exit_price_approx: Optional[Decimal] = None
    pnl_usd: Optional[Decimal] = None
    pnl_pct: Optional[Decimal] = None


class OrderExecutor:
    """Enters and exits one long position per symbol through the trading client.

    Entry order of checks: cooldown, open position/order, account sizing, price.
    Exits ignore cooldowns so a position can always be closed.
    """

    def __init__(
        self,
        client: AlpacaTradingClient,
        *,
        bar_cache: BarCache,
        cooldowns: CooldownTracker,
        sizer: PositionSizer,
        take_profit_percent: float,
        stop_loss_percent: float,
        trailing_stop_percent: float = 0.0,
        time_in_force: str = "gtc",
    ) -> None:
        self.client = client
        self.bar_cache = bar_cache
        self.cooldowns = cooldowns
        self.sizer = sizer
        self.take_profit_percent = float(take_profit_percent)
        self.stop_loss_percent = float(stop_loss_percent)
        self.trail_percent = Decimal(str(trailing_stop_percent)) if trailing_stop_percent > 0 else None
        self.time_in_force = time_in_force
        self._log = get_logger("order_executor")

    async def try_enter_long(self, symbol: str, decision: TradeDecision) -> EntryResult:
        if self.cooldowns.is_on_cooldown(symbol):
            entry = self.cooldowns.get(symbol)
            self._log.info("skip_buy_cooldown", symbol=symbol, until=entry.until.isoformat() if entry else None)
            return EntryResult("cooldown", "on cooldown")

        try:
            has_position = await self.client.has_open_position(symbol)
            has_orders = await self.client.has_open_orders(symbol)
            self._log.info("pre_checks", symbol=symbol, has_position=has_position, has_open_orders=has_orders)
            if has_position or has_orders:
                self._log.info("skip_buy", symbol=symbol, has_position=has_position, has_open_orders=has_orders)
                return EntryResult(
                    "already_open",
                    "position or open order exists",
                    has_position=has_position,
                    has_open_orders=has_orders,
                )

            account = await self.client.get_account()
        except Exception:
            self.cooldowns.start_cooldown(symbol, "entry pre-check failure")
            raise

        size = self.sizer.compute(account)
        if not size.allowed:
            self._log.info(
                "insufficient_funds",
                symbol=symbol,
                buying_power=account.buying_power,
                equity=account.equity,
                min_notional=self.sizer.min_notional,
                reason=size.reason,
            )
            self.cooldowns.start_cooldown(symbol, size.reason)
            return EntryResult("disqualified", size.reason)

        reference = decision.reference_price
        if reference is None:
            reference = self.bar_cache.get_last_close(symbol)
        if reference is None or reference <= 0:
            self._log.warning("cannot_price_entry", symbol=symbol, reference=reference)
            self.cooldowns.start_cooldown(symbol, "invalid reference price")
            return EntryResult("disqualified", "invalid reference price")

        legs = compute_tp_sl_from_price(reference, self.take_profit_percent, self.stop_loss_percent)
        request = BracketOrderRequest(
            symbol=symbol,
            side="buy",
            notional_usd=size.notional,
            take_profit_price=legs.take_profit_price,
            stop_loss_price=legs.stop_loss_price,
            time_in_force=self.time_in_force,
            trail_percent=self.trail_percent,
        )

        try:
            await self.client.submit_bracket_order(request)
        except Exception as e:
            self._log.error("order_submit_failed", symbol=symbol, error=str(e))
            self.cooldowns.start_cooldown(symbol, "order submission failure")
            raise OrderSubmissionError(f"order submission failed for {symbol}: {e}") from e

        # fills are async: the position may not exist yet
        entry_price = reference
        try:
            position = await self.client.get_position(symbol)
        except Exception as e:
            self._log.warning("entry_readback_failed", symbol=symbol, error=str(e))
            position = None
        if position is not None and position.avg_entry_price > 0:
            entry_price = position.avg_entry_price

        self._log.info(
            "buy_executed",
            symbol=symbol,
            notional=size.notional,
            reference=reference,
            entry_price=entry_price,
            take_profit=legs.take_profit_price,
            stop_loss=legs.stop_loss_price,
            trail_percent=self.trail_percent,
        )
        return EntryResult("submitted", decision.reason or "buy", notional=size.notional, entry_price=entry_price)

    async def try_exit_long(self, symbol: str) -> ExitResult:
        position = await self.client.get_position(symbol)
        if position is None or position.quantity <= 0:
            self._log.info("skip_sell_no_position", symbol=symbol)
            return ExitResult("no_position", "no open long position")

        await self.client.close_position(symbol)

        # approximate: the close fill price is unknown when the request is sent
        qty = position.quantity
        entry = position.avg_entry_price
        current = position.current_price
        pnl_usd = (current - entry) * qty
        pnl_pct: Optional[Decimal] = None
        if entry > 0:
            pnl_pct = (current - entry) / entry * 100

        self._log.info(
            "sell_executed",
            symbol=symbol,
            quantity=qty,
            entry_price=entry,
            exit_price_approx=current,
            pnl_usd=pnl_usd,
            pnl_pct=pnl_pct,
        )
        return ExitResult(
            "closed",
            "position close requested",
            quantity=qty,
            entry_price=entry,
            exit_price_approx=current,
            pnl_usd=pnl_usd,
            pnl_pct=pnl_pct,
        )
