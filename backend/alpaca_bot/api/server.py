# alpaca_bot/api/server.py
from __future__ import annotations

from contextlib import asynccontextmanager
from decimal import ROUND_HALF_EVEN, Decimal
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from alpaca_bot.api.state import AppState, get_state, set_state
from alpaca_bot.infrastructure.alpaca.alpaca_rest_client import (
    AlpacaAPIError,
    AlpacaMarketDataClient,
    AlpacaTradingClient,
)
from alpaca_bot.infrastructure.logging.logging import get_logger
from alpaca_bot.infrastructure.utils.config import TradingBotConfig, get_config
from alpaca_bot.services.monitoring.metrics_store import read_metrics

JsonDict = Dict[str, Any]


# --------- Schemas ---------
class SymbolsStatusPayload(BaseModel):
    symbols: List[str] = Field(default_factory=list)
    days: int = Field(default=10, ge=2, le=365)


def _split_symbols(raw: List[str]) -> List[str]:
    """Accepts ["AAPL", "MSFT"] as well as ["AAPL,MSFT"]."""
    out: List[str] = []
    for item in raw:
        for part in str(item).split(","):
            s = part.strip().upper()
            if s and s not in out:
                out.append(s)
    return out


def _money(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN))


def _state_from_config(config: TradingBotConfig) -> AppState:
    trading = AlpacaTradingClient(
        config.alpaca.trading_base_url,
        config.alpaca.api_key_id,
        config.alpaca.api_secret_key,
        timeout_sec=config.alpaca.request_timeout_sec,
    )
    market_data = AlpacaMarketDataClient(
        config.alpaca.market_data_base_url,
        config.alpaca.api_key_id,
        config.alpaca.api_secret_key,
        feed=config.alpaca.data_feed,
        timeout_sec=config.alpaca.request_timeout_sec,
    )
    return AppState(
        trading=trading,
        market_data=market_data,
        metrics_path=Path(config.monitoring.metrics_path),
        environment=config.environment,
    )


def create_app(config: Optional[TradingBotConfig] = None, state: Optional[AppState] = None) -> FastAPI:
    """Build the status API. A given state is used as-is (and not closed on shutdown)."""
    cfg = config if config is not None or state is not None else get_config()
    log = get_logger("api")

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        owned = state is None
        current = state if state is not None else _state_from_config(cfg)
        set_state(current)
        log.info("api_started", environment=current.environment)
        try:
            yield
        finally:
            if owned:
                await current.aclose()
            set_state(None)
            log.info("api_stopped")

    app = FastAPI(title="Alpaca Trading Bot API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.api.cors_origins if cfg is not None else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AlpacaAPIError)
    async def _alpaca_error(_: Request, exc: AlpacaAPIError) -> JSONResponse:
        log.error("alpaca_request_failed", status=exc.status_code, error=str(exc))
        return JSONResponse(status_code=502, content={"ok": False, "detail": str(exc)})

    # --------- Routes ---------
    @app.get("/health")
    def health() -> JsonDict:
        return {"ok": True, "env": get_state().environment}

    @app.get("/metrics")
    def metrics() -> JsonDict:
        try:
            return {"ok": True, "metrics": read_metrics(get_state().metrics_path)}
        except (OSError, ValueError) as e:
            raise HTTPException(status_code=500, detail=f"/metrics failed: {e}")

    @app.get("/api/market/clock")
    async def market_clock() -> JsonDict:
        clock = await get_state().trading.get_market_clock()
        return {
            "is_open": clock.is_open,
            "next_open": clock.next_open.isoformat() if clock.next_open else None,
            "next_close": clock.next_close.isoformat() if clock.next_close else None,
        }

    @app.get("/api/market/is-open")
    async def market_is_open() -> JsonDict:
        return {"is_open": await get_state().trading.is_market_open()}

    @app.get("/api/portfolio")
    async def portfolio() -> JsonDict:
        s = get_state()
        account = await s.trading.get_account()
        positions = await s.trading.get_positions()
        total_mv = sum((p.market_value for p in positions), Decimal("0"))
        total_pl = sum((p.unrealized_pl for p in positions), Decimal("0"))
        return {
            "account": {
                "equity": _money(account.equity),
                "buying_power": _money(account.buying_power),
                "currency": account.currency,
            },
            "positions": [
                {
                    "symbol": p.symbol,
                    "side": p.side,
                    "qty": str(p.quantity),
                    "avg_entry_price": str(p.avg_entry_price),
                    "current_price": str(p.current_price),
                    "market_value": _money(p.market_value),
                    "unrealized_pl": _money(p.unrealized_pl),
                }
                for p in positions
            ],
            "totals": {
                "market_value": _money(total_mv),
                "unrealized_pl": _money(total_pl),
                "count": len(positions),
            },
        }

    @app.post("/api/portfolio/close/{symbol}", status_code=202)
    async def close_position(symbol: str) -> JsonDict:
        sym = symbol.strip().upper()
        if not sym:
            raise HTTPException(status_code=400, detail="symbol is required")
        await get_state().trading.close_position(sym)
        log.info("close_requested", symbol=sym)
        return {"status": "close_submitted", "symbol": sym}

    @app.post("/api/symbols/status")
    async def symbols_status(payload: SymbolsStatusPayload) -> JsonDict:
        symbols = _split_symbols(payload.symbols)
        if not symbols:
            raise HTTPException(status_code=400, detail="symbols list is empty")

        md = get_state().market_data
        out: List[JsonDict] = []
        for sym in symbols:
            bars = await md.get_daily_bars(sym, payload.days)
            if not bars:
                out.append({"symbol": sym, "close": None, "change_pct": None, "note": "no data"})
                continue
            last = bars[-1]
            change_pct: Optional[str] = None
            if len(bars) >= 2 and bars[-2].close != 0:
                pct = (last.close - bars[-2].close) / bars[-2].close * 100
                change_pct = str(pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN))
            out.append(
                {
                    "symbol": sym,
                    "close": str(last.close),
                    "change_pct": change_pct,
                    "date": last.time.date().isoformat(),
                }
            )
        return {"ok": True, "days": payload.days, "symbols": out}

    return app
