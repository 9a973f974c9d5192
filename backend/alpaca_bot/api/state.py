# alpaca_bot/api/state.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from alpaca_bot.infrastructure.alpaca.alpaca_rest_client import AlpacaMarketDataClient, AlpacaTradingClient


@dataclass
class AppState:
    trading: AlpacaTradingClient
    market_data: AlpacaMarketDataClient
    metrics_path: Path
    environment: str = "PAPER"

    async def aclose(self) -> None:
        await self.trading.aclose()
        await self.market_data.aclose()


_state: Optional[AppState] = None


def set_state(state: Optional[AppState]) -> None:
    global _state
    _state = state


def get_state() -> AppState:
    if _state is None:
        raise RuntimeError("API state not initialized. Create the app through create_app().")
    return _state
