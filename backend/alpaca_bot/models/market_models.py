"""Market domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class Bar:
    time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = 0


@dataclass(frozen=True)
class MarketClock:
    is_open: bool
    next_open: Optional[datetime] = None
    next_close: Optional[datetime] = None


@dataclass(frozen=True)
class Asset:
    symbol: str
    name: str
    tradable: bool = False
    marginable: bool = False
    exchange: Optional[str] = None
    asset_class: str = "us_equity"
