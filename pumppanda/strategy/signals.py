from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from ..core.schemas import MarketAnalysis, RiskAssessment, TradingSignal, MAX_SIGNAL_CONFIDENCE


MIN_ANALYSIS_CONFIDENCE = 0.4
ACTION_CONFIDENCE_BOOST = 0.1
BASE_POSITION_FRACTION = 0.1


class SignalGenerator:
    """Turns classifications plus a portfolio risk assessment into order proposals.

    Config keys:
        stop_loss_percentage: stop-loss magnitude as a fraction (default 0.02)
        take_profit_percentage: take-profit magnitude as a fraction (default 0.04)
        strategy: tag written on every signal (default "recall_enhanced")
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, clock=None, log=None):
        config = config or {}
        self.stop_loss_percentage = float(config.get("stop_loss_percentage", 0.02))
        self.take_profit_percentage = float(config.get("take_profit_percentage", 0.04))
        self.strategy = config.get("strategy", "recall_enhanced")
        self.clock = clock
        self.log = log or logger.bind(component="strategy")

    def generate_signals(
        self,
        analyses: Sequence[MarketAnalysis],
        assessment: RiskAssessment,
        prices: Optional[Mapping[str, float]] = None,
    ) -> List[TradingSignal]:
        """Generate signals for a batch of analyses.

        Args:
            analyses: Per-symbol classifications
            assessment: Portfolio-level risk assessment for this cycle
            prices: Optional symbol -> price map used to fill signal prices

        Returns:
            Buy/sell signals sorted by confidence descending; hold is never emitted
        """
        signals: List[TradingSignal] = []
        for analysis in analyses:
            try:
                signal = self.generate_signal(analysis, assessment)
            except Exception as e:
                self.log.error("[STRATEGY_SIGNAL] Signal generation failed", symbol=analysis.symbol, error=str(e))
                continue
            if signal is None:
                continue
            if prices and analysis.symbol in prices:
                signal.price = prices[analysis.symbol]
            signals.append(signal)

        signals.sort(key=lambda s: s.confidence, reverse=True)
        self.log.info("[STRATEGY_SIGNAL] Signals generated", count=len(signals), analyses=len(analyses))
        return signals

    def generate_signal(self, analysis: MarketAnalysis, assessment: RiskAssessment) -> Optional[TradingSignal]:
        """Zero or one signal for a single classification."""
        if analysis.risk_level == "high" and assessment.risk_level == "high":
            return None

        if analysis.confidence < MIN_ANALYSIS_CONFIDENCE:
            return None

        action = self.select_action(analysis)
        if action == "hold":
            return None

        boosted = analysis.confidence + ACTION_CONFIDENCE_BOOST
        # sizing uses the boosted value; the cap only applies to the emitted confidence
        quantity = round(BASE_POSITION_FRACTION * assessment.max_position_size * boosted)
        confidence = min(MAX_SIGNAL_CONFIDENCE, boosted)

        if action == "buy":
            stop_loss, take_profit = -self.stop_loss_percentage, self.take_profit_percentage
        else:
            stop_loss, take_profit = self.stop_loss_percentage, -self.take_profit_percentage

        extra = {"timestamp": self.clock()} if self.clock is not None else {}
        return TradingSignal(
            symbol=analysis.symbol,
            action=action,
            quantity=quantity,
            price=0.0,
            strategy=self.strategy,
            confidence=confidence,
            stop_loss=stop_loss,
            take_profit=take_profit,
            **extra,
        )

    @staticmethod
    def select_action(analysis: MarketAnalysis) -> str:
        if analysis.trend == "bullish" and any("bullish" in s for s in analysis.signals):
            return "buy"
        if analysis.trend == "bearish" and any("bearish" in s for s in analysis.signals):
            return "sell"
        return "hold"


__all__ = ["SignalGenerator"]
