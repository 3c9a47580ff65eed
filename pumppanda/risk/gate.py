"""
风险闸门

两个独立的打分函数，共享运行计数器（当日亏损、持仓数）：
- assess_risk: 组合层面打分，>= 70 拒绝，并按分数阶梯缩减仓位上限
- validate_signal: 单个信号打分，>= 50 拒绝

计数器只由执行方（组合管理）通过 update_* / reset_* 修改。
拒绝是返回值，不是异常。
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from loguru import logger

from ..core.schemas import (
    MarketAnalysis,
    PortfolioSnapshot,
    RiskAssessment,
    SignalValidation,
    TradingSignal,
)

ASSESS_HIGH_THRESHOLD = 70
ASSESS_MEDIUM_THRESHOLD = 30
SIGNAL_REJECT_THRESHOLD = 50

# (最低分数, 仓位比例)，从高到低
POSITION_SCALE_STEPS = ((70, 0.1), (50, 0.3), (30, 0.6))


def calculate_drawdown(portfolio: Optional[PortfolioSnapshot]) -> float:
    """当前回撤 max(0, (初始 - 当前) / 初始)，初始值非正时为 0"""
    if portfolio is None or portfolio.initial_value <= 0:
        return 0.0
    drawdown = (portfolio.initial_value - portfolio.current_value) / portfolio.initial_value
    return max(0.0, drawdown)


class RiskGate:
    """
    风险闸门

    配置项:
        max_daily_loss: 当日最大亏损（默认 1000）
        max_drawdown: 最大回撤比例（默认 0.05）
        max_open_positions: 最大持仓数（默认 5）
        max_position_size: 单笔最大仓位价值（默认 10000）
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, log=None):
        config = config or {}
        self.max_daily_loss = float(config.get("max_daily_loss", 1000))
        self.max_drawdown = float(config.get("max_drawdown", 0.05))
        self.max_open_positions = int(config.get("max_open_positions", 5))
        self.max_position_size = float(config.get("max_position_size", 10000))
        self.log = log or logger.bind(component="risk")

        self.daily_loss = 0.0
        self.open_positions = 0

    # ==================== 打分 ====================

    def assess_risk(
        self,
        analyses: Sequence[MarketAnalysis],
        portfolio: Optional[PortfolioSnapshot],
    ) -> RiskAssessment:
        """
        组合层面风险评估

        Args:
            analyses: 本周期的分析结果
            portfolio: 组合快照（用于计算回撤）

        Returns:
            RiskAssessment
        """
        score = 0
        warnings = []

        if self.daily_loss >= self.max_daily_loss:
            score += 50
            warnings.append("Daily loss limit reached")

        if calculate_drawdown(portfolio) > self.max_drawdown:
            score += 40
            warnings.append("Maximum drawdown exceeded")

        if self.open_positions >= self.max_open_positions:
            score += 30
            warnings.append("Maximum open positions reached")

        if any(a.risk_level == "high" for a in analyses):
            score += 20
            warnings.append("High market volatility detected")

        if score >= ASSESS_HIGH_THRESHOLD:
            level = "high"
        elif score >= ASSESS_MEDIUM_THRESHOLD:
            level = "medium"
        else:
            level = "low"

        assessment = RiskAssessment(
            is_acceptable=score < ASSESS_HIGH_THRESHOLD,
            risk_level=level,
            risk_score=score,
            warnings=warnings,
            max_position_size=self.scaled_position_size(score),
        )
        self.log.info(
            "[RISK_ASSESS] Risk assessment completed",
            score=score,
            level=level,
            acceptable=assessment.is_acceptable,
            warnings=warnings,
        )
        return assessment

    def validate_signal(self, signal: TradingSignal) -> SignalValidation:
        """单个信号校验（阈值比组合评估更严格）"""
        score = 0
        warnings = []

        if signal.quantity * signal.price > self.max_position_size:
            score += 30
            warnings.append("Position size exceeds maximum allowed")

        if signal.confidence < 0.6:
            score += 20
            warnings.append("Low confidence signal")

        if not signal.stop_loss or not signal.take_profit:
            score += 15
            warnings.append("Missing stop loss or take profit")

        if self.open_positions >= self.max_open_positions:
            score += 25
            warnings.append("Maximum open positions reached")

        validation = SignalValidation(is_valid=score < SIGNAL_REJECT_THRESHOLD, risk_score=score, warnings=warnings)
        if not validation.is_valid:
            self.log.warning(
                "[RISK_VALIDATE] Signal rejected",
                symbol=signal.symbol,
                action=signal.action,
                score=score,
                warnings=warnings,
            )
        return validation

    def scaled_position_size(self, score: int) -> float:
        """按分数阶梯缩减仓位上限：>=70 10%，>=50 30%，>=30 60%，否则 100%"""
        for floor, fraction in POSITION_SCALE_STEPS:
            if score >= floor:
                return self.max_position_size * fraction
        return self.max_position_size

    # ==================== 计数器 ====================

    def update_daily_loss(self, loss: float):
        """累加当日亏损"""
        self.daily_loss += loss
        self.log.info("[RISK_STATE] Daily loss updated", current=self.daily_loss, limit=self.max_daily_loss)

    def update_open_positions(self, count: int):
        """设置当前持仓数"""
        self.open_positions = count
        self.log.info("[RISK_STATE] Open positions updated", current=count, limit=self.max_open_positions)

    def reset_daily_loss(self):
        self.daily_loss = 0.0
        self.log.info("[RISK_STATE] Daily loss reset")

    def get_state(self) -> Dict[str, Any]:
        return {
            "daily_loss": self.daily_loss,
            "open_positions": self.open_positions,
            "max_daily_loss": self.max_daily_loss,
            "max_open_positions": self.max_open_positions,
        }


__all__ = ["RiskGate", "calculate_drawdown"]
