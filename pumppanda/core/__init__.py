"""
Core package for PumpPanda

Shared building blocks used by every other component:

- Schemas: pydantic models for market samples, analyses, signals,
  risk assessments, portfolio snapshots and trade executions
- Clock: injectable time source
- Errors: the not-initialized contract violation
"""

from .schemas import (
    Indicators,
    MarketSample,
    MarketAnalysis,
    TradingSignal,
    RiskAssessment,
    SignalValidation,
    Position,
    PortfolioSnapshot,
    TradeExecution,
    MAX_SIGNAL_CONFIDENCE,
)

from .clock import Clock, ManualClock, system_clock

from .errors import NotInitializedError, ensure_initialized


__all__ = [
    # Schemas
    'Indicators',
    'MarketSample',
    'MarketAnalysis',
    'TradingSignal',
    'RiskAssessment',
    'SignalValidation',
    'Position',
    'PortfolioSnapshot',
    'TradeExecution',
    'MAX_SIGNAL_CONFIDENCE',

    # Time source
    'Clock',
    'ManualClock',
    'system_clock',

    # Errors
    'NotInitializedError',
    'ensure_initialized',
]
