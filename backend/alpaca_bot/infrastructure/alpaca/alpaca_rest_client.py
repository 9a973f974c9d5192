"""Alpaca REST clients (trading + market data) using httpx.AsyncClient.

Features:
- API key headers on every request
- Non-2xx -> AlpacaAPIError (status, body) so callers can isolate failures
- Decimal parsing of Alpaca's string numbers
- Injectable transport (httpx.MockTransport in tests)
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from alpaca_bot.infrastructure.logging.logging import get_logger
from alpaca_bot.infrastructure.utils.timeutils import parse_iso, utc_now
from alpaca_bot.models.market_models import Asset, Bar, MarketClock
from alpaca_bot.models.trade_models import Account, BracketOrderRequest, Position

JsonDict = Dict[str, Any]


class AlpacaAPIError(RuntimeError):
    def __init__(self, status_code: int, body: str, *, method: str = "", path: str = "") -> None:
        super().__init__(f"Alpaca API error {status_code} on {method} {path}: {body[:300]}")
        self.status_code = status_code
        self.body = body
        self.method = method
        self.path = path


def _dec(value: Any, default: str = "0") -> Decimal:
    if value is None or value == "":
        return Decimal(default)
    return Decimal(str(value))


def _bar_from_json(el: JsonDict) -> Bar:
    return Bar(
        time=parse_iso(el["t"]),
        open=_dec(el.get("o")),
        high=_dec(el.get("h")),
        low=_dec(el.get("l")),
        close=_dec(el.get("c")),
        volume=int(el.get("v") or 0),
    )


def _position_from_json(el: JsonDict) -> Position:
    return Position(
        symbol=str(el.get("symbol", "")),
        quantity=_dec(el.get("qty")),
        avg_entry_price=_dec(el.get("avg_entry_price")),
        current_price=_dec(el.get("current_price")),
        market_value=_dec(el.get("market_value")),
        unrealized_pl=_dec(el.get("unrealized_pl")),
        side=str(el.get("side", "long")),
    )


class _AlpacaRestClient:
    def __init__(
        self,
        base_url: str,
        api_key_id: str,
        api_secret_key: str,
        *,
        component: str,
        timeout_sec: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._logger = get_logger(component)
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/v2/",
            headers={
                "APCA-API-KEY-ID": api_key_id,
                "APCA-API-SECRET-KEY": api_secret_key,
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout_sec, connect=5.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "_AlpacaRestClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[JsonDict] = None,
        json: Optional[JsonDict] = None,
    ) -> httpx.Response:
        clean = {k: v for k, v in (params or {}).items() if v is not None}
        return await self._http.request(method, path, params=clean or None, json=json)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[JsonDict] = None,
        json: Optional[JsonDict] = None,
    ) -> Any:
        resp = await self._send(method, path, params=params, json=json)
        if resp.is_error:
            self._logger.error("alpaca_request_failed", method=method, path=path, status=resp.status_code, body=resp.text[:500])
            raise AlpacaAPIError(resp.status_code, resp.text, method=method, path=path)
        if not resp.content:
            return None
        return resp.json()


class AlpacaTradingClient(_AlpacaRestClient):
    def __init__(
        self,
        base_url: str,
        api_key_id: str,
        api_secret_key: str,
        *,
        timeout_sec: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url,
            api_key_id,
            api_secret_key,
            component="alpaca_trading",
            timeout_sec=timeout_sec,
            transport=transport,
        )

    async def get_account(self) -> Account:
        data = await self._request("GET", "account")
        if not isinstance(data, dict):
            raise AlpacaAPIError(200, "empty account payload", method="GET", path="account")
        acc = Account(
            equity=_dec(data.get("equity")),
            buying_power=_dec(data.get("buying_power")),
            currency=str(data.get("currency") or "USD"),
        )
        self._logger.debug("account_snapshot", equity=acc.equity, buying_power=acc.buying_power, currency=acc.currency)
        return acc

    async def get_position(self, symbol: str) -> Optional[Position]:
        resp = await self._send("GET", f"positions/{symbol}")
        if resp.status_code == 404:
            return None
        if resp.is_error:
            raise AlpacaAPIError(resp.status_code, resp.text, method="GET", path=f"positions/{symbol}")
        return _position_from_json(resp.json())

    async def get_positions(self) -> List[Position]:
        data = await self._request("GET", "positions")
        return [_position_from_json(el) for el in (data or [])]

    async def has_open_position(self, symbol: str) -> bool:
        pos = await self.get_position(symbol)
        self._logger.debug("open_position_check", symbol=symbol, has_position=pos is not None)
        return pos is not None

    async def has_open_orders(self, symbol: str) -> bool:
        data = await self._request("GET", "orders", params={"status": "open", "symbols": symbol})
        count = len(data) if isinstance(data, list) else 0
        self._logger.debug("open_orders_check", symbol=symbol, count=count)
        return count > 0

    async def submit_bracket_order(self, request: BracketOrderRequest) -> JsonDict:
        if request.trail_percent is not None and request.trail_percent > 0:
            stop_loss: JsonDict = {"trail_percent": str(request.trail_percent)}
        else:
            stop_loss = {"stop_price": str(request.stop_loss_price)}

        body: JsonDict = {
            "symbol": request.symbol,
            "side": request.side,
            "type": "market",
            "time_in_force": request.time_in_force,
            "notional": str(request.notional_usd),
            "order_class": "bracket",
            "take_profit": {"limit_price": str(request.take_profit_price)},
            "stop_loss": stop_loss,
        }
        self._logger.info(
            "order_submit",
            symbol=request.symbol,
            side=request.side,
            tif=request.time_in_force,
            notional=str(request.notional_usd),
            take_profit=str(request.take_profit_price),
            stop_loss=stop_loss,
        )
        data = await self._request("POST", "orders", json=body)
        self._logger.info("order_submitted", symbol=request.symbol, order_id=(data or {}).get("id"))
        return data or {}

    async def close_position(self, symbol: str) -> None:
        self._logger.info("position_close_request", symbol=symbol)
        await self._request("DELETE", f"positions/{symbol}")

    async def get_market_clock(self) -> MarketClock:
        data = await self._request("GET", "clock") or {}
        return MarketClock(
            is_open=bool(data.get("is_open")),
            next_open=parse_iso(data.get("next_open")),
            next_close=parse_iso(data.get("next_close")),
        )

    async def is_market_open(self) -> bool:
        clock = await self.get_market_clock()
        return clock.is_open

    async def get_assets(self) -> List[Asset]:
        data = await self._request("GET", "assets", params={"status": "active", "asset_class": "us_equity"})
        assets: List[Asset] = []
        for el in data or []:
            symbol = el.get("symbol")
            if not symbol:
                continue
            assets.append(
                Asset(
                    symbol=str(symbol),
                    name=str(el.get("name") or symbol),
                    tradable=bool(el.get("tradable")),
                    marginable=bool(el.get("marginable")),
                    exchange=el.get("exchange"),
                    asset_class=str(el.get("class") or "us_equity"),
                )
            )
        self._logger.info("assets_fetched", count=len(assets))
        return assets


class AlpacaMarketDataClient(_AlpacaRestClient):
    """Market data: missing data is not an error here, failures log and return empty."""

    def __init__(
        self,
        base_url: str,
        api_key_id: str,
        api_secret_key: str,
        *,
        feed: str = "iex",
        timeout_sec: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url,
            api_key_id,
            api_secret_key,
            component="alpaca_market_data",
            timeout_sec=timeout_sec,
            transport=transport,
        )
        self.feed = feed

    async def _get_or_none(self, path: str, params: JsonDict, symbol: str) -> Optional[JsonDict]:
        resp = await self._send("GET", path, params=params)
        if resp.is_error:
            self._logger.error("market_data_failed", symbol=symbol, path=path, status=resp.status_code, body=resp.text[:500])
            return None
        data = resp.json()
        return data if isinstance(data, dict) else None

    async def get_recent_bars(self, symbol: str, limit: int) -> List[Bar]:
        now = utc_now()
        start = now - timedelta(minutes=limit + 5)
        data = await self._get_or_none(
            f"stocks/{symbol}/bars",
            {
                "timeframe": "1Min",
                "limit": int(limit),
                "start": start.isoformat(),
                "end": now.isoformat(),
                "feed": self.feed,
            },
            symbol,
        )
        bars = [_bar_from_json(el) for el in ((data or {}).get("bars") or [])]
        return sorted(bars, key=lambda b: b.time)

    async def get_latest_bar(self, symbol: str) -> Optional[Bar]:
        data = await self._get_or_none(f"stocks/{symbol}/bars/latest", {"feed": self.feed}, symbol)
        el = (data or {}).get("bar")
        if not isinstance(el, dict):
            return None
        return _bar_from_json(el)

    async def get_daily_bars(self, symbol: str, days: int) -> List[Bar]:
        now = utc_now()
        # calendar days include weekends/holidays; ask for more and keep the tail
        start = now - timedelta(days=days * 2 + 5)
        data = await self._get_or_none(
            f"stocks/{symbol}/bars",
            {"timeframe": "1Day", "start": start.isoformat(), "feed": self.feed},
            symbol,
        )
        bars = sorted((_bar_from_json(el) for el in ((data or {}).get("bars") or [])), key=lambda b: b.time)
        return bars[-days:] if days > 0 else bars

    async def get_last_trade_price(self, symbol: str) -> Optional[Decimal]:
        data = await self._get_or_none(f"stocks/{symbol}/trades/latest", {"feed": self.feed}, symbol)
        trade = (data or {}).get("trade")
        if isinstance(trade, dict) and trade.get("p") is not None:
            return _dec(trade.get("p"))
        return None
