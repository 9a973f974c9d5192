from __future__ import annotations

from datetime import timedelta, timezone
from decimal import Decimal

import pytest

from alpaca_bot.models.market_models import Asset
from alpaca_bot.services.market.asset_scanner import AssetScanner

# T0 is 14:30 UTC


def _scanner(trading, market_data, clock, **kw) -> AssetScanner:
    params = {"price_threshold_usd": 50.0, "start_hour_local": 8, "end_hour_local": 23, "tz": timezone.utc}
    params.update(kw)
    return AssetScanner(trading, market_data, clock=clock, **params)


@pytest.mark.asyncio
async def test_scan_lists_cheap_tradable_assets_sorted(trading, market_data, clock):
    trading.assets = [
        Asset("F", "Ford", tradable=True),
        Asset("AAPL", "Apple", tradable=True),
        Asset("SIRI", "Sirius", tradable=True),
        Asset("OLD", "Delisted", tradable=False),
    ]
    market_data.prices = {"F": Decimal("12.10"), "AAPL": Decimal("187"), "SIRI": Decimal("3.2"), "OLD": Decimal("1")}

    result = await _scanner(trading, market_data, clock).scan()

    assert [c.symbol for c in result] == ["SIRI", "F"]
    assert result[0].price_usd == Decimal("3.2")


@pytest.mark.asyncio
async def test_scan_uses_configured_symbols(trading, market_data, clock):
    trading.assets = [Asset("F", "Ford", tradable=True)]
    market_data.prices = {"T": Decimal("17"), "F": Decimal("12")}

    result = await _scanner(trading, market_data, clock, symbols=["t", "NOPRICE"]).scan()
    assert [c.symbol for c in result] == ["T"]


@pytest.mark.asyncio
async def test_scan_outside_window_is_empty(trading, market_data, clock):
    trading.assets = [Asset("F", "Ford", tradable=True)]
    market_data.prices = {"F": Decimal("12")}
    scanner = _scanner(trading, market_data, clock, start_hour_local=15, end_hour_local=20)

    assert scanner.in_window() is False
    assert await scanner.scan() == []

    clock.advance(timedelta(minutes=30))
    assert scanner.in_window() is True
    assert [c.symbol for c in await scanner.scan()] == ["F"]


@pytest.mark.asyncio
async def test_disabled_scanner_is_empty(trading, market_data, clock):
    trading.assets = [Asset("F", "Ford", tradable=True)]
    market_data.prices = {"F": Decimal("12")}
    assert await _scanner(trading, market_data, clock, enabled=False).scan() == []
