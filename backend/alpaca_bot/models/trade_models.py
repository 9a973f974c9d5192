from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal, Optional


TradeAction = Literal["HOLD", "BUY", "SELL"]
OrderSide = Literal["buy", "sell"]


@dataclass(frozen=True)
class TradeDecision:
    action: TradeAction = "HOLD"
    reference_price: Optional[Decimal] = None
    reason: Optional[str] = None
    last_close: Optional[Decimal] = None
    ema_short: Optional[Decimal] = None
    ema_long: Optional[Decimal] = None


@dataclass(frozen=True)
class Account:
    equity: Decimal
    buying_power: Decimal
    currency: str = "USD"


@dataclass(frozen=True)
class Position:
    symbol: str
    quantity: Decimal
    avg_entry_price: Decimal
    current_price: Decimal
    market_value: Decimal = Decimal("0")
    unrealized_pl: Decimal = Decimal("0")
    side: str = "long"


@dataclass(frozen=True)
class BracketOrderRequest:
    symbol: str
    side: OrderSide
    notional_usd: Decimal
    take_profit_price: Decimal
    stop_loss_price: Decimal
    time_in_force: str = "gtc"
    trail_percent: Optional[Decimal] = None  # replaces stop_loss_price when set
