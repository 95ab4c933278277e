#!/usr/bin/env python3
"""
Backtesting Script - проверка флаговых сигналов на исторических свечах.

CSV: строки klines ``open_time,open,high,low,close,volume[,...]``,
заголовок необязателен.

Использование:
    python scripts/run_backtest.py --csv data/BTCUSDT_15m.csv --symbol BTCUSDT
    python scripts/run_backtest.py --csv data/ETHUSDT_4h.csv --symbol ETHUSDT --timeframe 4h --tp 0.03 --sl 0.015
    python scripts/run_backtest.py --csv data/BTCUSDT_15m.csv --htf-csv data/BTCUSDT_4h.csv --symbol BTCUSDT
"""

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import List

# Добавляем src в путь
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import settings
from signals.backtest import BacktestReport, BacktestSimulator
from signals.models import Candle, SignalStrength

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


def load_candles(path: Path) -> List[Candle]:
    """Прочитать свечи из CSV, пропуская заголовок и пустые строки."""
    candles = []
    with path.open(newline="") as f:
        for row in csv.reader(f):
            if not row or not row[0].strip().lstrip("-").isdigit():
                continue
            candles.append(Candle.from_kline(row))
    candles.sort(key=lambda c: c.open_time)
    logger.info(f"Loaded {len(candles)} candles from {path}")
    return candles


def print_report(symbol: str, timeframe: str, report: BacktestReport):
    """Вывести отчёт бэктеста."""
    filled = int(report.hit_rate / 10)
    print(f"""
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
📊 BACKTEST REPORT: {symbol} {timeframe}
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

📈 Всего сигналов: {len(report.trades)}
✅ Тейк-профит: {report.take_profit_hits}
❌ Стоп-лосс: {report.stop_loss_hits}
⏳ Без результата: {report.no_results}

🎯 Hit Rate: {report.hit_rate:.1f}%
{"█" * filled}{"░" * (10 - filled)}

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
""")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Backtest flag signals over a candle CSV")
    parser.add_argument("--csv", type=Path, required=True, help="Kline CSV file")
    parser.add_argument("--symbol", type=str, default="UNKNOWN", help="Symbol name for the report")
    parser.add_argument("--timeframe", type=str, default="15m", help="Candle timeframe (default: 15m)")
    parser.add_argument(
        "--htf-csv",
        type=Path,
        default=None,
        help="Kline CSV of the higher timeframe (15m -> 4h, 4h -> 1d); needed for Strong signals",
    )
    parser.add_argument("--tp", type=float, default=settings.backtest_take_profit, help="Take-profit fraction")
    parser.add_argument("--sl", type=float, default=settings.backtest_stop_loss, help="Stop-loss fraction")
    parser.add_argument(
        "--min-strength",
        choices=[s.value for s in SignalStrength if s is not SignalStrength.NONE],
        default=SignalStrength.WEAK.value,
        help="Weakest signal to trade (default: Weak)",
    )

    args = parser.parse_args(argv)

    candles = load_candles(args.csv)
    if not candles:
        logger.error(f"No candles in {args.csv}")
        return 1

    higher = load_candles(args.htf_csv) if args.htf_csv else None
    if higher is None:
        logger.warning("No higher timeframe candles: Strong signals will not be reported")

    report = BacktestSimulator(settings).replay_classifier(
        args.symbol.upper(),
        candles,
        args.timeframe,
        min_strength=SignalStrength(args.min_strength),
        take_profit=args.tp,
        stop_loss=args.sl,
        higher_tf_candles=higher,
    )
    print_report(args.symbol.upper(), args.timeframe, report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
