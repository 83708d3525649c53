"""
TPO Engine Runner

Entry point for the production engine.
"""

import sys
import json
import argparse
import time
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.broker_config import MT5Config
from config.settings import load_settings
from src.tpo_engine import (
    ConfigurationError,
    EngineError,
    EngineRunner,
    PaperAccount,
    PaperOrderGateway,
    PathConfig,
)
from src.tpo_engine import mt5_adapter


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="TPO Gold Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_tpo_engine.py                         # Dry run mode (default)
  python run_tpo_engine.py --config settings.yaml  # Custom settings
  python run_tpo_engine.py --live                  # LIVE TRADING
  python run_tpo_engine.py --status                # Print status and exit
        """
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='YAML settings file (default: built-in settings)'
    )

    parser.add_argument(
        '--live',
        action='store_true',
        help='Enable LIVE trading (default: dry run)'
    )

    parser.add_argument(
        '--status',
        action='store_true',
        help='Print engine status and exit'
    )

    parser.add_argument(
        '--data-dir',
        type=str,
        default=None,
        help='Data directory for logs'
    )

    return parser.parse_args(argv)


def build_runner(config, mt5_config: MT5Config) -> EngineRunner:
    """Live market data; orders go to MT5 only in live mode."""
    mt5_adapter.connect(mt5_config)
    data = mt5_adapter.MT5MarketData(config.strategy.symbol)

    if config.dry_run:
        account = PaperAccount(balance=data.current_balance())
        spec = data.symbol_spec(config.strategy.symbol)
        gateway = PaperOrderGateway(account, contract_size=spec.contract_size)
    else:
        gateway = mt5_adapter.MT5OrderGateway(config.execution)

    return EngineRunner(data, gateway, config)


def main(argv=None):
    args = parse_args(argv)

    try:
        config = load_settings(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 1

    if args.live:
        config.dry_run = False
    if args.data_dir:
        config.paths = PathConfig(base_dir=Path(args.data_dir))

    try:
        try:
            runner = build_runner(config, MT5Config.from_env())
        except (EngineError, ValueError) as e:
            print(f"Startup failed: {e}")
            return 1

        if args.status:
            try:
                runner.start()
            except ConfigurationError as e:
                print(f"Initialization failed: {e}")
                return 1
            print(json.dumps(runner.get_status(), indent=2, default=str))
            return 0

        print()
        print("=" * 60)
        if not config.dry_run:
            print("LIVE TRADING MODE - REAL MONEY AT RISK")
        else:
            print("DRY RUN MODE - No real trades will be placed")
        print("=" * 60)
        print()

        if not config.dry_run:
            print("Starting in 5 seconds... Press Ctrl+C to cancel")
            time.sleep(5)

        runner.run()
        return 0
    finally:
        mt5_adapter.disconnect()


if __name__ == "__main__":
    sys.exit(main())
