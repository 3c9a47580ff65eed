"""
热门代币扫描

每条启用的区块链：
1. 热门代币列表 - 黑名单（白名单非空时只保留白名单内代币）
2. 逐个取行情并分析
3. 看涨代币记录为 market_event
4. auto_buy 开启时走 风险评估 -> 生成信号 -> 校验 -> 执行
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from ..core.errors import NotInitializedError
from ..core.schemas import MarketAnalysis, MarketSample, TradeExecution, TradingSignal
from ..memory.schemas import MarketEventPayload
from ..memory.store import EventStore
from ..providers.base import ExecutionProvider, MarketDataProvider
from ..risk.gate import RiskGate
from ..strategy.analyzer import MarketAnalyzer
from ..strategy.signals import SignalGenerator

SubmitSignals = Callable[[List[TradingSignal]], Awaitable[List[TradeExecution]]]


class MemeTokenScanner:
    """热门代币扫描器"""

    def __init__(
        self,
        config: Dict[str, Any],
        market: MarketDataProvider,
        executor: ExecutionProvider,
        store: EventStore,
        analyzer: MarketAnalyzer,
        generator: SignalGenerator,
        risk_gate: RiskGate,
        submit: SubmitSignals,
        log=None,
    ):
        """
        Args:
            config: trending_tokens / blacklisted_tokens / whitelisted_tokens / enabled_chains / auto_buy
            submit: 逐个校验并执行信号的回调（与交易周期共用）
        """
        self.config = config
        self.market = market
        self.executor = executor
        self.store = store
        self.analyzer = analyzer
        self.generator = generator
        self.risk_gate = risk_gate
        self.submit = submit
        self.log = log or logger.bind(component="scanner")

    @property
    def auto_buy(self) -> bool:
        return bool(self.config.get("auto_buy", False))

    def find_trending_tokens(self, chain: str) -> List[str]:
        """热门代币去掉黑名单，白名单非空时取交集"""
        blacklist = set(self.config.get("blacklisted_tokens", []))
        whitelist = set(self.config.get("whitelisted_tokens", []))
        tokens = []
        for token in self.config.get("trending_tokens", []):
            if token in blacklist:
                continue
            if whitelist and token not in whitelist:
                continue
            if token not in tokens:
                tokens.append(token)
        return tokens

    async def scan(self) -> List[MarketAnalysis]:
        """
        扫描所有启用的区块链

        Returns:
            看涨代币的分析结果
        """
        bullish: List[MarketAnalysis] = []
        for chain in self.config.get("enabled_chains", []):
            tokens = self.find_trending_tokens(chain)
            if not tokens:
                continue
            self.log.info("[SCAN] Trending tokens found", chain=chain, tokens=tokens)
            for token in tokens:
                try:
                    analysis = await self.analyze_token(chain, token)
                except NotInitializedError:
                    raise
                except Exception as e:
                    self.log.error("[SCAN] Token analysis failed", chain=chain, token=token, error=str(e))
                    continue
                if analysis is not None:
                    bullish.append(analysis)
        return bullish

    async def analyze_token(self, chain: str, token: str) -> Optional[MarketAnalysis]:
        sample = await self.market.get_sample(token, chain)
        if sample is None:
            return None

        analysis = self.analyzer.analyze_market([sample], self.store)[0]
        if analysis.trend != "bullish":
            return None

        self.log.info("[SCAN] Bullish token detected", chain=chain, token=token, confidence=round(analysis.confidence, 3))
        self.store.record_market_event(MarketEventPayload(
            event_type="bullish_token",
            symbol=token,
            chain=chain,
            data={
                "price": sample.price,
                "volume": sample.volume,
                "confidence": analysis.confidence,
                "signals": list(analysis.signals),
            },
        ))

        if self.auto_buy:
            await self.trade(chain, sample, analysis)
        return analysis

    async def trade(self, chain: str, sample: MarketSample, analysis: MarketAnalysis) -> List[TradeExecution]:
        portfolio = await self.executor.get_portfolio_snapshot()
        assessment = self.risk_gate.assess_risk([analysis], portfolio)
        if not assessment.is_acceptable:
            self.log.warning("[SCAN] Auto-buy blocked by risk gate", chain=chain, token=sample.symbol, score=assessment.risk_score)
            return []

        signals = self.generator.generate_signals([analysis], assessment, {sample.symbol: sample.price})
        executions = await self.submit(signals)
        if executions:
            self.log.info("[SCAN] Meme token trade submitted", chain=chain, token=sample.symbol, executions=len(executions))
        return executions
