"""
PerformanceTracker 单元测试
"""

import json
from datetime import datetime

import pandas as pd
import pytest

from pumppanda.analytics import PerformanceTracker, compute_metrics
from pumppanda.core import ManualClock, PortfolioSnapshot, TradeExecution


@pytest.fixture
def clock():
    return ManualClock(datetime(2025, 6, 1, 18, 0, 0))


@pytest.fixture
def tracker(tmp_path, clock):
    return PerformanceTracker({"reports_dir": str(tmp_path / "reports")}, clock=clock)


def execution(action="sell", pnl=0.0, status="executed", trade_id="t1"):
    return TradeExecution(
        id=trade_id,
        symbol="PEPE",
        action=action,
        quantity=10,
        price=1.0,
        timestamp=datetime(2025, 6, 1, 12, 0, 0),
        status=status,
        realized_pnl=pnl,
    )


def snapshot(value, initial=100000.0):
    return PortfolioSnapshot(initial_value=initial, current_value=value, cash=value)


class TestMetrics:
    """指标计算测试"""

    def test_empty_tracker(self, tracker):
        metrics = tracker.get_metrics()
        assert metrics["total_return"] == 0
        assert metrics["total_trades"] == 0
        assert metrics["win_rate"] == 0
        assert metrics["profit_factor"] == 0
        assert metrics["sharpe_ratio"] == 0
        assert metrics["max_drawdown"] == 0

    def test_drawdown_and_return(self, tracker):
        for value in [100000, 110000, 99000]:
            tracker.record_snapshot(snapshot(value))

        metrics = tracker.get_metrics()
        assert metrics["max_drawdown"] == pytest.approx(10.0)
        assert metrics["total_return"] == pytest.approx(-1000)
        assert metrics["total_return_percentage"] == pytest.approx(-1.0)

    def test_trade_statistics(self, tracker):
        tracker.record_trade(execution("buy", trade_id="b1"))
        tracker.record_trade(execution("sell", 100.0, trade_id="s1"))
        tracker.record_trade(execution("sell", -50.0, trade_id="s2"))

        metrics = tracker.get_metrics()
        assert metrics["total_trades"] == 3
        assert metrics["win_rate"] == pytest.approx(0.5)
        assert metrics["profit_factor"] == pytest.approx(2.0)
        assert metrics["best_trade"] == pytest.approx(100)
        assert metrics["worst_trade"] == pytest.approx(-50)
        assert metrics["average_loss"] == pytest.approx(-50)

    def test_failed_trades_ignored(self, tracker):
        tracker.record_trade(execution("sell", -500.0, status="failed"))
        assert tracker.trades == []

    def test_profit_factor_without_losses(self):
        trades = pd.DataFrame([{"action": "sell", "realized_pnl": 10.0}])
        metrics = compute_metrics(1000.0, pd.Series([1010.0]), trades)
        assert metrics["profit_factor"] == float("inf")

    def test_snapshot_cap(self, tracker):
        for i in range(1005):
            tracker.record_snapshot(snapshot(100000 + i))
        assert len(tracker.snapshots) == 1000
        assert tracker.snapshots[-1]["current_value"] == 101004


class TestReport:
    """报告测试"""

    def test_save_report(self, tracker, tmp_path):
        tracker.record_snapshot(snapshot(100500))
        tracker.record_trade(execution("sell", 500.0))

        path = tracker.save_report()
        assert path.endswith("performance-report-2025-06-01.json")

        with open(path, "r", encoding="utf-8") as f:
            report = json.load(f)
        assert report["metrics"]["win_rate"] == 1.0
        assert report["metrics"]["profit_factor"] is None
        assert report["portfolio"]["current_value"] == 100500
        assert "Total Return" in report["summary"]

    def test_save_report_failure_returns_none(self, tmp_path, clock):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        tracker = PerformanceTracker({"reports_dir": str(blocker / "reports")}, clock=clock)
        assert tracker.save_report() is None
