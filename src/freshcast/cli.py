"""
FreshCast - Command Line Interface
===================================

Usage:
    freshcast forecast --sales sales.csv --product P001 --market M1 \\
        --date 2026-03-07 --price 30 --cost 10 [--weather rain] [--json]
    freshcast accuracy --sales sales.csv --forecast-log log.csv \\
        [--price-table prices.csv] [--json]

Sales and forecast-log files are read with pandas (CSV or Parquet).
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .accuracy import analyze_accuracy
from .config import Config
from .explanation import ExplanationGenerator
from .forecaster import SmartForecaster
from .models import log_entries_from_frame, records_from_frame
from .utils.logger import get_logger, set_level

logger = get_logger(__name__)


def load_table(path: str) -> pd.DataFrame:
    """Read a CSV or Parquet file into a DataFrame."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if file_path.suffix.lower() in ('.parquet', '.pq'):
        return pd.read_parquet(file_path)
    return pd.read_csv(file_path)


def load_price_table(path: Optional[str]) -> Dict[str, Dict[str, float]]:
    """product_id -> {'unit_price', 'unit_cost'} from a price table file."""
    if not path:
        return {}
    df = load_table(path)
    return {
        str(row['product_id']): {
            'unit_price': float(row['unit_price']),
            'unit_cost': float(row['unit_cost']),
        }
        for row in df.to_dict('records')
    }


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog='freshcast',
        description='Production quantity forecasting for perishable goods'
    )
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    forecast_parser = subparsers.add_parser('forecast', help='Recommend a production quantity')
    forecast_parser.add_argument('--sales', required=True, help='Sales history (CSV or Parquet)')
    forecast_parser.add_argument('--product', required=True, help='Product ID')
    forecast_parser.add_argument('--variant', help='Variant ID')
    forecast_parser.add_argument('--market', required=True, help='Market ID')
    forecast_parser.add_argument('--date', required=True, help='Target date (YYYY-MM-DD)')
    forecast_parser.add_argument('--price', type=float, required=True, help='Unit selling price')
    forecast_parser.add_argument('--cost', type=float, required=True, help='Unit production cost')
    forecast_parser.add_argument('--disposal-cost', type=float, help='Cost of disposing an unsold unit')
    forecast_parser.add_argument('--weather', choices=['sunny', 'cloudy', 'rain', 'storm'],
                                 help='Weather on the target date')
    forecast_parser.add_argument('--fetch-weather', action='store_true',
                                 help='Look the weather up with the forecast service')
    forecast_parser.add_argument('--location', help='Weather location preset')
    forecast_parser.add_argument('--forecast-log', help='Prior forecasts (CSV or Parquet) for self-learning')
    forecast_parser.add_argument('--today', help='Reference date instead of today (YYYY-MM-DD)')
    forecast_parser.add_argument('--json', action='store_true', help='Print the full output as JSON')

    accuracy_parser = subparsers.add_parser('accuracy', help='Compare logged forecasts with actual sales')
    accuracy_parser.add_argument('--sales', required=True, help='Sales history (CSV or Parquet)')
    accuracy_parser.add_argument('--forecast-log', required=True, help='Prior forecasts (CSV or Parquet)')
    accuracy_parser.add_argument('--price-table', help='CSV with product_id, unit_price, unit_cost')
    accuracy_parser.add_argument('--json', action='store_true', help='Print the full report as JSON')

    return parser.parse_args(argv)


def run_forecast(args: argparse.Namespace, config: Config) -> int:
    sales = records_from_frame(load_table(args.sales))
    forecast_log = log_entries_from_frame(load_table(args.forecast_log)) if args.forecast_log else None

    forecaster = SmartForecaster(config)
    output = forecaster.forecast(
        sales, args.product, args.market, args.date, args.price, args.cost,
        disposal_cost=args.disposal_cost,
        variant_id=args.variant,
        weather=args.weather,
        fetch_weather=args.fetch_weather,
        location=args.location,
        forecast_log=forecast_log,
        reference_date=args.today,
    )

    if args.json:
        print(json.dumps(output.to_dict(), indent=2, default=str))
    else:
        print(ExplanationGenerator(config).explain(output).to_string())

    return 0 if output.success else 2


def run_accuracy(args: argparse.Namespace, config: Config) -> int:
    sales = records_from_frame(load_table(args.sales))
    forecast_log = log_entries_from_frame(load_table(args.forecast_log))
    report = analyze_accuracy(forecast_log, sales, load_price_table(args.price_table))

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
        return 0

    summary = report.summary
    print("=" * 60)
    print("FORECAST ACCURACY")
    print("=" * 60)
    print(f"Forecasts analyzed: {summary.get('total_forecasts', 0)}")
    if summary.get('total_forecasts', 0) == 0:
        return 0

    print(f"Overall accuracy:   {summary['overall_accuracy']:.1f}%")
    print(f"Overall bias:       {summary['overall_bias_percent']:+.1f}%")
    print(f"Waste:              {summary['total_waste_qty']:.0f} units ({summary['total_waste_cost']:,.2f})")
    print(f"Stockouts:          {summary['total_stockout_qty']:.0f} units "
          f"({summary['total_lost_margin']:,.2f} margin lost)")

    if report.recommendations:
        print("\nRecommendations:")
        for rec in report.recommendations:
            print(f"  [{rec['priority']}] {rec['target']}: {rec['issue']} - {rec['suggestion']}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the ``freshcast`` command."""
    args = parse_args(argv)
    config = Config.from_env()
    set_level(config.log_level)

    try:
        if args.command == 'forecast':
            return run_forecast(args, config)
        if args.command == 'accuracy':
            return run_accuracy(args, config)
    except (FileNotFoundError, KeyError, ValueError) as e:
        logger.error(f"Cannot read input: {e}")
        return 1

    print("Please specify a command: forecast or accuracy")
    return 1


if __name__ == "__main__":
    sys.exit(main())
