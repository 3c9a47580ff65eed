"""
Strategy package for PumpPanda

- MarketAnalyzer: sample + recalled history -> MarketAnalysis
- SignalGenerator: MarketAnalysis + RiskAssessment -> TradingSignal
"""

from .analyzer import MarketAnalyzer
from .signals import SignalGenerator

__all__ = ["MarketAnalyzer", "SignalGenerator"]
