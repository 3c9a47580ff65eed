from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from ..core.errors import NotInitializedError
from ..core.schemas import MarketAnalysis, MarketSample, MAX_SIGNAL_CONFIDENCE
from ..memory.schemas import CyclePayload, MemoryRecord, RecallQuery, RecordKind
from ..memory.store import EventStore


# Technical indicator thresholds
RSI_OVERSOLD = 30
RSI_OVERBOUGHT = 70
HIGH_VOLATILITY = 0.05

# Historical pattern windows
MIN_HISTORY_RECORDS = 10
HISTORY_LIMIT = 50
PRICE_WINDOW = 20
VOLUME_WINDOW = 10
LEVEL_WINDOW = 50
MIN_LEVEL_PRICES = 10
MIN_SERIES_POINTS = 3

VOLUME_SPIKE_RATIO = 1.5
VOLUME_DROUGHT_RATIO = 0.5
LEVEL_PROXIMITY = 0.02

BULLISH_MARKERS = ("bullish", "above", "oversold")
BEARISH_MARKERS = ("bearish", "below", "overbought")


def technical_tags(sample: MarketSample) -> List[str]:
    """Stateless indicator thresholds; absent indicators contribute no tag."""
    tags: List[str] = []
    ind = sample.indicators

    if ind.rsi is not None:
        if ind.rsi < RSI_OVERSOLD:
            tags.append("rsi_oversold")
        elif ind.rsi > RSI_OVERBOUGHT:
            tags.append("rsi_overbought")

    if ind.macd is not None:
        tags.append("macd_bullish" if ind.macd > 0 else "macd_bearish")

    if ind.moving_average is not None:
        tags.append("price_above_ma" if sample.price > ind.moving_average else "price_below_ma")

    if ind.volatility is not None:
        tags.append("high_volatility" if ind.volatility > HIGH_VOLATILITY else "low_volatility")

    return tags


def price_pattern_tags(prices: Sequence[float]) -> List[str]:
    """Trend continuation and V / inverted-V reversal over the last three prices."""
    if len(prices) < MIN_SERIES_POINTS:
        return []

    p3, p2, p1 = prices[-3], prices[-2], prices[-1]
    tags: List[str] = []

    if p1 > p2 > p3:
        tags.append("uptrend_continuation")
    elif p1 < p2 < p3:
        tags.append("downtrend_continuation")

    if p1 > p2 and p2 < p3:
        tags.append("potential_reversal_bullish")
    elif p1 < p2 and p2 > p3:
        tags.append("potential_reversal_bearish")

    return tags


def volume_pattern_tags(current_volume: float, volumes: Sequence[float]) -> List[str]:
    """Volume spike / drought against the trailing average."""
    if len(volumes) < MIN_SERIES_POINTS:
        return []

    avg_volume = sum(volumes) / len(volumes)
    if current_volume > avg_volume * VOLUME_SPIKE_RATIO:
        return ["high_volume"]
    if current_volume < avg_volume * VOLUME_DROUGHT_RATIO:
        return ["low_volume"]
    return []


def level_tags(current_price: float, prices: Sequence[float]) -> List[str]:
    """Support / resistance proximity to the observed min and max."""
    if len(prices) < MIN_LEVEL_PRICES:
        return []

    tags: List[str] = []
    if abs(current_price - min(prices)) / current_price < LEVEL_PROXIMITY:
        tags.append("near_support")
    if abs(current_price - max(prices)) / current_price < LEVEL_PROXIMITY:
        tags.append("near_resistance")
    return tags


def vote_trend(tags: Sequence[str]) -> str:
    """Majority vote that only flips away from neutral on a margin greater than one."""
    bullish = bearish = 0
    for t in tags:
        if any(m in t for m in BULLISH_MARKERS):
            bullish += 1
        elif any(m in t for m in BEARISH_MARKERS):
            bearish += 1

    if bullish > bearish + 1:
        return "bullish"
    if bearish > bullish + 1:
        return "bearish"
    return "neutral"


def trend_strength(sample: MarketSample, tags: Sequence[str]) -> float:
    strength = 0.5
    for t in tags:
        if "strong" in t:
            strength += 0.1
        elif "weak" in t:
            strength -= 0.1

    if sample.indicators.volatility is not None:
        strength += sample.indicators.volatility * 0.5

    return max(0.0, min(1.0, strength))


def analysis_confidence(technical: Sequence[str], patterns: Sequence[str]) -> float:
    return min(MAX_SIGNAL_CONFIDENCE, 0.5 + 0.05 * len(technical) + 0.03 * len(patterns))


def risk_level(sample: MarketSample, confidence: float, strength: float) -> str:
    score = 0
    volatility = sample.indicators.volatility
    if volatility is not None and volatility > 0.1:
        score += 2
    if confidence < 0.4:
        score += 2
    if strength > 0.8:
        score += 1

    if score >= 3:
        return "high"
    if score >= 1:
        return "medium"
    return "low"


class MarketAnalyzer:
    """Classifies market samples using indicator thresholds and recalled cycle history.

    Config keys:
        history_limit: number of prior cycle records recalled per symbol (default 50)
        min_history_records: records required before pattern tags are computed (default 10)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, log=None):
        config = config or {}
        self.history_limit = int(config.get("history_limit", HISTORY_LIMIT))
        self.min_history_records = int(config.get("min_history_records", MIN_HISTORY_RECORDS))
        self.log = log or logger.bind(component="strategy")

    def analyze_market(self, samples: Sequence[MarketSample], store: EventStore) -> List[MarketAnalysis]:
        """Analyze a batch of samples; a failing sample degrades to the safe default.

        Args:
            samples: Current market samples
            store: Event store used to recall prior cycles

        Returns:
            One analysis per sample, in input order
        """
        analyses: List[MarketAnalysis] = []
        for sample in samples:
            try:
                history = self.recall_history(sample.symbol, store)
                analyses.append(self.analyze_sample(sample, history))
            except NotInitializedError:
                raise
            except Exception as e:
                self.log.error("[STRATEGY_ANALYZE] Analysis failed, using default", symbol=sample.symbol, error=str(e))
                analyses.append(MarketAnalysis.failed(sample.symbol))
        return analyses

    def recall_history(self, symbol: str, store: EventStore) -> List[MemoryRecord]:
        """Most relevant prior cycles for the symbol, oldest first."""
        records = store.query(RecallQuery(kind=RecordKind.CYCLE, tags=[symbol], limit=self.history_limit))
        return sorted(records, key=lambda r: r.created_at)

    def analyze_sample(self, sample: MarketSample, history: Sequence[MemoryRecord]) -> MarketAnalysis:
        technical = technical_tags(sample)
        patterns = self.pattern_tags(sample, history)

        trend = vote_trend(technical)
        strength = trend_strength(sample, technical)
        confidence = analysis_confidence(technical, patterns)

        analysis = MarketAnalysis(
            symbol=sample.symbol,
            trend=trend,
            strength=strength,
            confidence=confidence,
            signals=technical + patterns,
            risk_level=risk_level(sample, confidence, strength),
        )
        self.log.debug(
            "[STRATEGY_ANALYZE] Sample classified",
            symbol=sample.symbol,
            trend=analysis.trend,
            confidence=round(analysis.confidence, 3),
            tags=analysis.signals,
        )
        return analysis

    def pattern_tags(self, sample: MarketSample, history: Sequence[MemoryRecord]) -> List[str]:
        if len(history) < self.min_history_records:
            return []

        prices = self._series(history[-PRICE_WINDOW:], sample.symbol, "price")
        volumes = self._series(history[-VOLUME_WINDOW:], sample.symbol, "volume")
        level_prices = self._series(history[-LEVEL_WINDOW:], sample.symbol, "price")

        tags = price_pattern_tags(prices)
        tags += volume_pattern_tags(sample.volume, volumes)
        tags += level_tags(sample.price, level_prices)
        return tags

    @staticmethod
    def _series(records: Sequence[MemoryRecord], symbol: str, field: str) -> List[float]:
        values: List[float] = []
        for record in records:
            payload = record.payload
            if not isinstance(payload, CyclePayload):
                continue
            past = payload.sample_for(symbol)
            if past is not None:
                values.append(getattr(past, field))
        return values


__all__ = [
    "MarketAnalyzer",
    "technical_tags",
    "price_pattern_tags",
    "volume_pattern_tags",
    "level_tags",
    "vote_trend",
    "trend_strength",
    "analysis_confidence",
    "risk_level",
]
