from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, confloat
from pydantic import ConfigDict


Trend = Literal["bullish", "bearish", "neutral"]
RiskLevel = Literal["low", "medium", "high"]
SignalAction = Literal["buy", "sell", "hold"]
ExecutionStatus = Literal["executed", "failed", "pending"]

# Hard ceiling for any emitted signal confidence
MAX_SIGNAL_CONFIDENCE = 0.95


class _ConfigBase(BaseModel):
    model_config = ConfigDict(validate_assignment=True, extra="forbid")


class Indicators(_ConfigBase):
    rsi: Optional[float] = None              # Relative strength index, 0-100
    macd: Optional[float] = None             # Moving-average convergence value
    moving_average: Optional[float] = None
    volatility: Optional[confloat(ge=0)] = None  # Volatility ratio, 0.05 == 5%


class MarketSample(_ConfigBase):
    symbol: str
    price: confloat(gt=0)
    volume: confloat(ge=0) = 0.0
    timestamp: datetime = Field(default_factory=datetime.now)
    indicators: Indicators = Field(default_factory=Indicators)


class MarketAnalysis(_ConfigBase):
    symbol: str
    trend: Trend = "neutral"
    strength: confloat(ge=0, le=1) = 0.5
    confidence: confloat(ge=0, le=1) = 0.5
    signals: List[str] = Field(default_factory=list)
    risk_level: RiskLevel = "medium"

    @classmethod
    def failed(cls, symbol: str) -> "MarketAnalysis":
        """Safe default used when a sample cannot be analyzed."""
        return cls(
            symbol=symbol,
            trend="neutral",
            strength=0.5,
            confidence=0.3,
            signals=["analysis_failed"],
            risk_level="medium",
        )


class TradingSignal(_ConfigBase):
    symbol: str
    action: SignalAction
    quantity: confloat(ge=0) = 0.0
    price: confloat(ge=0) = 0.0  # 0 until filled from market data
    strategy: str = "recall_enhanced"
    confidence: confloat(ge=0, le=MAX_SIGNAL_CONFIDENCE) = 0.5
    stop_loss: Optional[float] = None    # Signed fraction, e.g. -0.02 for a buy
    take_profit: Optional[float] = None  # Signed fraction, e.g. 0.04 for a buy
    timestamp: datetime = Field(default_factory=datetime.now)


class RiskAssessment(_ConfigBase):
    is_acceptable: bool
    risk_level: RiskLevel
    risk_score: int = Field(ge=0)
    warnings: List[str] = Field(default_factory=list)
    max_position_size: float = 0.0


class SignalValidation(_ConfigBase):
    is_valid: bool
    risk_score: int = Field(ge=0)
    warnings: List[str] = Field(default_factory=list)


class Position(_ConfigBase):
    symbol: str
    quantity: float
    entry_price: float
    current_price: float
    entry_time: datetime
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    pnl: float = 0.0
    pnl_percentage: float = 0.0


class PortfolioSnapshot(_ConfigBase):
    initial_value: float
    current_value: float
    cash: float = 0.0
    total_pnl: float = 0.0
    total_pnl_percentage: float = 0.0
    positions: List[Position] = Field(default_factory=list)


class TradeExecution(_ConfigBase):
    id: str
    symbol: str
    action: Literal["buy", "sell"]
    quantity: float
    price: float
    timestamp: datetime
    status: ExecutionStatus = "pending"
    message: Optional[str] = None
    realized_pnl: float = 0.0  # Only non-zero for executed sells
