"""
Application entry point.

This module defines a simple command-line interface for the trade tools
in different modes (size, paper, live).  It loads the configuration,
connects to MetaTrader 5 for prices, runs the configured strategy
against the paper or the live host and writes a run report.
"""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .config.schema import Config, ConfigurationError, load_config
from .data.instruments import from_string
from .data.mt5_data import MT5DataFeed
from .execution.host import TradingHost
from .execution.mt5_exec import MT5Host
from .execution.paper_exec import PaperHost
from .execution.runner import StrategyRunner
from .reporting.report import generate_run_report
from .risk.conversion import InstrumentNotFoundError
from .risk.sizing import PositionSizer
from .strategy.runtime import StrategyRuntime


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def _size(config: Config, feed: MT5DataFeed) -> int:
    """Log the amount the configured risk and stop-loss would trade."""
    cfg = config.strategy
    instrument = from_string(cfg.instrument)
    if instrument is None:
        logging.error("Unknown instrument: %s", cfg.instrument)
        return 1
    try:
        direction = cfg.direction
        if cfg.stop_loss_pips <= 0:
            raise ConfigurationError(f"Invalid stop loss pips: {cfg.stop_loss_pips}")
        account_currency = feed.get_account().currency
        sizer = PositionSizer(feed, account_currency, config.risk.max_position_size)
        amount = sizer.size_position(instrument, cfg.stop_loss_pips, cfg.constant_currency_risk, direction)
    except (ConfigurationError, InstrumentNotFoundError) as exc:
        logging.error("%s", exc)
        return 1
    logging.info(
        "%s %s risking %s %s over %s pips: amount %.6f (%.2f lots)",
        direction.value, instrument, cfg.constant_currency_risk, account_currency,
        cfg.stop_loss_pips, amount, amount * 10,
    )
    return 0


def _run(config: Config, host: TradingHost, report_dir: str) -> int:
    runtime = StrategyRuntime(config, host)
    state = StrategyRunner(runtime, host, config.runner).run()
    if state is None:
        return 1
    if report_dir:
        metrics = generate_run_report(state, out_dir=report_dir)
        logging.info("Run complete. %d order(s) closed, results saved to '%s'.", metrics['num_orders'], report_dir)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Parse command-line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="Constant currency risk FX trade tools")
    parser.add_argument('mode', choices=['size', 'paper', 'live'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    parser.add_argument('--report-dir', default=None, help="Directory for the run report (overrides runner.report_dir)")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    config = load_config(args.config)
    # Override mode from CLI if provided
    config.mode = args.mode
    report_dir = args.report_dir if args.report_dir is not None else config.runner.report_dir

    feed = MT5DataFeed(config.mt5, timezone=config.data.timezone)
    feed.connect()
    try:
        if args.mode == 'size':
            return _size(config, feed)
        if args.mode == 'paper':
            logging.info("Starting paper trading on MetaTrader 5 prices...")
            host: TradingHost = PaperHost(
                feed,
                account_currency=config.paper.account_currency,
                commission_per_lot=config.costs.commission_per_lot,
            )
        else:
            logging.info("Starting live trading via MetaTrader 5...")
            host = MT5Host(feed, magic=config.mt5.magic)
        return _run(config, host, report_dir)
    finally:
        feed.shutdown()


if __name__ == '__main__':
    raise SystemExit(main())
