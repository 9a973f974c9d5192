"""Entrypoint.

Usage:
  python -m alpaca_bot.app.main engine   # run trading engine
  python -m alpaca_bot.app.main api      # run FastAPI status server
  python -m alpaca_bot.app.main scan     # list cheap tradable symbols once
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

import uvicorn

from alpaca_bot.app.engine import run_engine
from alpaca_bot.infrastructure.alpaca.alpaca_rest_client import AlpacaMarketDataClient, AlpacaTradingClient
from alpaca_bot.infrastructure.logging.logging import configure_logging, get_logger
from alpaca_bot.infrastructure.utils.config import load_config, reload_config
from alpaca_bot.services.market.asset_scanner import AssetScanner, ScanCandidate


async def run_scan(config_path: Optional[Path] = None) -> List[ScanCandidate]:
    config = load_config(config_path)
    configure_logging(config.log_level, config.log_format)
    log = get_logger("scan")

    async with AlpacaTradingClient(
        config.alpaca.trading_base_url,
        config.alpaca.api_key_id,
        config.alpaca.api_secret_key,
        timeout_sec=config.alpaca.request_timeout_sec,
    ) as trading, AlpacaMarketDataClient(
        config.alpaca.market_data_base_url,
        config.alpaca.api_key_id,
        config.alpaca.api_secret_key,
        feed=config.alpaca.data_feed,
        timeout_sec=config.alpaca.request_timeout_sec,
    ) as market_data:
        sc = config.scanner
        scanner = AssetScanner(
            trading,
            market_data,
            price_threshold_usd=sc.price_threshold_usd,
            start_hour_local=sc.start_hour_local,
            end_hour_local=sc.end_hour_local,
            enabled=sc.enabled,
            symbols=sc.symbols,
        )
        candidates = await scanner.scan()

    for c in candidates:
        log.info("scan_candidate", symbol=c.symbol, price_usd=str(c.price_usd))
    return candidates


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser("alpaca-trading-bot")
    parser.add_argument("command", choices=["engine", "api", "scan"], help="What to run")
    parser.add_argument("--config", type=Path, default=None, help="Path to a YAML config (default: config/default.yaml)")
    args = parser.parse_args(argv)

    if args.command == "engine":
        asyncio.run(run_engine(args.config))
        return

    if args.command == "api":
        from alpaca_bot.api.server import create_app

        config = reload_config(args.config)
        configure_logging(config.log_level, config.log_format)
        uvicorn.run(create_app(config), host=config.api.host, port=config.api.port, reload=False)
        return

    if args.command == "scan":
        asyncio.run(run_scan(args.config))
        return


if __name__ == "__main__":
    main()
