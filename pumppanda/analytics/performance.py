from __future__ import annotations

import math
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from loguru import logger

from ..core.clock import Clock, system_clock
from ..core.schemas import PortfolioSnapshot, TradeExecution
from ..utils.io import atomic_write_text, canonical_json, ensure_dir

MAX_SNAPSHOTS = 1000


def _json_safe(obj: Any) -> Any:
    """Recursively replace NaN/Inf with None and unwrap numpy scalars."""
    if obj is None or isinstance(obj, (str, bool, int)):
        return obj
    if isinstance(obj, np.generic):
        obj = obj.item()
    if isinstance(obj, float):
        return None if (math.isnan(obj) or math.isinf(obj)) else obj
    if isinstance(obj, dict):
        return {k: _json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_json_safe(v) for v in obj]
    return obj


def _max_drawdown(nav: pd.Series) -> float:
    if nav.empty:
        return 0.0
    roll_max = nav.cummax()
    dd = (nav / roll_max) - 1.0
    return float(-dd.min() * 100)


def compute_metrics(initial_value: float, values: pd.Series, trades: pd.DataFrame) -> Dict[str, Any]:
    """Portfolio and trade statistics.

    Args:
        initial_value: Starting portfolio value
        values: Portfolio value per snapshot, in time order
        trades: Executed trades with a realized_pnl column

    Returns:
        Dict of metrics; max_drawdown and total_return_percentage are percentages
    """
    current = float(values.iloc[-1]) if not values.empty else initial_value
    total_return = current - initial_value
    total_return_pct = total_return / initial_value * 100 if initial_value else 0.0

    nav = pd.concat([pd.Series([initial_value]), values.astype(float)], ignore_index=True)
    ret = nav.pct_change().dropna()
    std = float(ret.std()) if len(ret) > 1 else 0.0
    sharpe = float(ret.mean() / std * math.sqrt(len(ret))) if std > 0 else 0.0

    total_trades = int(len(trades))
    closed = trades.loc[trades["action"] == "sell", "realized_pnl"] if total_trades else pd.Series(dtype=float)
    wins = closed[closed > 0]
    losses = closed[closed < 0]

    gross_profit = float(wins.sum())
    gross_loss = float(-losses.sum())
    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    else:
        profit_factor = float("inf") if gross_profit > 0 else 0.0

    return {
        "total_return": total_return,
        "total_return_percentage": total_return_pct,
        "sharpe_ratio": sharpe,
        "max_drawdown": _max_drawdown(nav),
        "win_rate": float(len(wins) / len(closed)) if len(closed) else 0.0,
        "profit_factor": profit_factor,
        "total_trades": total_trades,
        "winning_trades": int(len(wins)),
        "losing_trades": int(len(losses)),
        "average_win": float(wins.mean()) if len(wins) else 0.0,
        "average_loss": float(losses.mean()) if len(losses) else 0.0,
        "best_trade": float(closed.max()) if len(closed) else 0.0,
        "worst_trade": float(closed.min()) if len(closed) else 0.0,
    }


class PerformanceTracker:
    """Records executed trades and portfolio snapshots, reports metrics.

    Config keys:
        reports_dir: directory for JSON reports (default ./reports)
        initial_value: fallback starting value before the first snapshot
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, clock: Clock = system_clock, log=None):
        config = config or {}
        self.reports_dir = config.get("reports_dir") or os.path.join(os.getcwd(), "reports")
        self.initial_value = float(config.get("initial_value", 100000.0))
        self.clock = clock
        self.log = log or logger.bind(component="performance")

        self.trades: List[Dict[str, Any]] = []
        self.snapshots: List[Dict[str, Any]] = []

    def record_trade(self, execution: TradeExecution):
        """Only executed trades count towards metrics."""
        if execution.status != "executed":
            return
        self.trades.append(execution.model_dump())
        self.log.debug("[PERF_TRADE] Trade recorded", trade_id=execution.id)

    def record_snapshot(self, snapshot: PortfolioSnapshot):
        self.initial_value = snapshot.initial_value
        self.snapshots.append({
            "timestamp": self.clock(),
            "current_value": snapshot.current_value,
            "cash": snapshot.cash,
            "positions": len(snapshot.positions),
        })
        if len(self.snapshots) > MAX_SNAPSHOTS:
            self.snapshots = self.snapshots[-MAX_SNAPSHOTS:]

    def get_metrics(self) -> Dict[str, Any]:
        values = pd.DataFrame(self.snapshots, columns=["timestamp", "current_value"])["current_value"]
        trades = pd.DataFrame(self.trades, columns=["id", "symbol", "action", "quantity", "price", "realized_pnl"])
        return compute_metrics(self.initial_value, values, trades)

    def generate_report(self) -> Dict[str, Any]:
        metrics = self.get_metrics()
        return {
            "timestamp": self.clock(),
            "metrics": metrics,
            "portfolio": self.snapshots[-1] if self.snapshots else None,
            "summary": self.summary(metrics),
        }

    @staticmethod
    def summary(metrics: Dict[str, Any]) -> str:
        sign = "+" if metrics["total_return"] >= 0 else ""
        return (
            f"Total Return: {sign}{metrics['total_return']:.2f} ({sign}{metrics['total_return_percentage']:.2f}%) | "
            f"Sharpe: {metrics['sharpe_ratio']:.2f} | "
            f"Max Drawdown: {metrics['max_drawdown']:.2f}% | "
            f"Win Rate: {metrics['win_rate'] * 100:.1f}% | "
            f"Trades: {metrics['total_trades']} | "
            f"Profit Factor: {metrics['profit_factor']:.2f}"
        )

    def save_report(self) -> Optional[str]:
        """Write the current report as JSON; failures are logged, not raised.

        Returns:
            Report file path, or None when the write failed
        """
        report = self.generate_report()
        stamp: datetime = report["timestamp"]
        path = os.path.join(self.reports_dir, f"performance-report-{stamp.strftime('%Y-%m-%d')}.json")
        try:
            ensure_dir(self.reports_dir)
            atomic_write_text(path, canonical_json(_json_safe(report), indent=2))
        except OSError as e:
            self.log.error("[PERF_REPORT] Failed to write report", path=path, error=str(e))
            return None

        self.log.info("[PERF_REPORT] Performance report saved", path=path, summary=report["summary"])
        return path
