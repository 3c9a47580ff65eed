"""
SignalGenerator 单元测试
"""

import pytest

from pumppanda.core import MarketAnalysis, RiskAssessment
from pumppanda.strategy import SignalGenerator


@pytest.fixture
def generator():
    return SignalGenerator({"stop_loss_percentage": 0.02, "take_profit_percentage": 0.04})


def assessment(level="low", max_position_size=1000.0):
    return RiskAssessment(
        is_acceptable=level != "high",
        risk_level=level,
        risk_score={"low": 0, "medium": 30, "high": 70}[level],
        max_position_size=max_position_size,
    )


def analysis(symbol="PEPE", trend="bullish", confidence=0.7, signals=None, risk="low"):
    if signals is None:
        signals = ["macd_bullish"] if trend == "bullish" else ["macd_bearish"]
    return MarketAnalysis(
        symbol=symbol,
        trend=trend,
        strength=0.6,
        confidence=confidence,
        signals=signals,
        risk_level=risk,
    )


class TestSignalRules:
    """信号规则测试"""

    @pytest.mark.parametrize("trend", ["bullish", "bearish", "neutral"])
    def test_low_confidence_never_signals(self, generator, trend):
        """置信度 < 0.4 时不产生信号"""
        a = analysis(trend=trend, confidence=0.35, signals=["macd_bullish", "macd_bearish"])
        assert generator.generate_signal(a, assessment()) is None

    def test_quantity_sizing(self, generator):
        """maxPositionSize=1000，加成后置信度 0.8 -> 数量 80"""
        signal = generator.generate_signal(analysis(confidence=0.7), assessment(max_position_size=1000))
        assert signal.action == "buy"
        assert signal.confidence == pytest.approx(0.8)
        assert signal.quantity == 80

    def test_buy_stop_and_take(self, generator):
        signal = generator.generate_signal(analysis(), assessment())
        assert signal.stop_loss == pytest.approx(-0.02)
        assert signal.take_profit == pytest.approx(0.04)
        assert signal.strategy == "recall_enhanced"
        assert signal.price == 0.0

    def test_sell_mirrors_stops(self, generator):
        signal = generator.generate_signal(analysis(trend="bearish"), assessment())
        assert signal.action == "sell"
        assert signal.stop_loss == pytest.approx(0.02)
        assert signal.take_profit == pytest.approx(-0.04)

    def test_trend_without_matching_tag_is_hold(self, generator):
        """趋势看涨但没有 bullish 标签 -> hold -> 不产生信号"""
        a = analysis(trend="bullish", signals=["rsi_oversold", "price_above_ma"])
        assert generator.generate_signal(a, assessment()) is None

    def test_neutral_is_hold(self, generator):
        assert generator.generate_signal(analysis(trend="neutral", signals=["macd_bullish"]), assessment()) is None

    def test_both_high_risk_blocks(self, generator):
        """分析和组合都是高风险时才拦截"""
        a = analysis(risk="high")
        assert generator.generate_signal(a, assessment("high")) is None
        assert generator.generate_signal(a, assessment("medium")) is not None
        assert generator.generate_signal(analysis(risk="low"), assessment("high")) is not None

    def test_confidence_capped_after_sizing(self, generator):
        """数量按加成后的置信度计算，0.95 上限只作用于信号置信度"""
        signal = generator.generate_signal(analysis(confidence=0.9), assessment(max_position_size=1000))
        assert signal.confidence == pytest.approx(0.95)
        assert signal.quantity == 100

        signal = generator.generate_signal(analysis(confidence=0.95), assessment(max_position_size=1000))
        assert signal.confidence == pytest.approx(0.95)
        assert signal.quantity == 105

    def test_quantity_uses_scaled_ceiling(self, generator):
        """仓位上限取风险评估缩减后的 max_position_size"""
        signal = generator.generate_signal(analysis(confidence=0.7), assessment("medium", max_position_size=3000))
        assert signal.quantity == 240


class TestBatch:
    """批量生成测试"""

    def test_sorted_by_confidence(self, generator):
        signals = generator.generate_signals(
            [
                analysis("LOW", confidence=0.5),
                analysis("HIGH", confidence=0.8),
                analysis("NONE", trend="neutral"),
                analysis("MID", trend="bearish", confidence=0.6),
            ],
            assessment(),
        )
        assert [s.symbol for s in signals] == ["HIGH", "MID", "LOW"]
        assert all(s.action != "hold" for s in signals)

    def test_prices_filled(self, generator):
        signals = generator.generate_signals([analysis("PEPE")], assessment(), prices={"PEPE": 1.25})
        assert signals[0].price == pytest.approx(1.25)

    def test_empty_batch(self, generator):
        assert generator.generate_signals([], assessment()) == []
