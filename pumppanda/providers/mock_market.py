"""
模拟行情数据源

按基准价表生成随机行情：
- 价格：基准价 ±1%
- 成交量：100k - 1.1M
- RSI 0-100，MACD -1..1，均线 基准价 ±0.5%，波动率 0-0.1

随机数由 numpy Generator 生成，传入 seed 即可复现。
"""

from typing import Any, Dict, List, Optional

import numpy as np
from loguru import logger

from ..core.clock import Clock, system_clock
from ..core.errors import ensure_initialized
from ..core.schemas import Indicators, MarketSample
from .base import MarketDataProvider

DEFAULT_PRICE = 100.0

BASE_PRICES: Dict[str, float] = {
    "BTC/USD": 50000.0,
    "ETH/USD": 3000.0,
    "AAPL": 150.0,
    "GOOGL": 2800.0,
    "TSLA": 800.0,
    # meme tokens
    "PEPE": 0.000001,
    "SHIB": 0.00001,
    "DOGE": 0.08,
    "FLOKI": 0.00002,
    "BALD": 0.0001,
    "TOSHI": 0.00005,
    "SAFEMOON": 0.000001,
    "BABYDOGE": 0.0000001,
}


class MockMarketDataProvider(MarketDataProvider):
    """模拟行情数据源"""

    def __init__(self, config: Dict[str, Any], clock: Clock = system_clock, log=None):
        """
        Args:
            config: symbols（品种列表）、seed（随机种子）、base_prices（覆盖基准价）
            clock: 时间源
            log: 绑定了组件上下文的 logger
        """
        super().__init__(config)
        self.base_prices = {**BASE_PRICES, **config.get("base_prices", {})}
        self.rng = np.random.default_rng(config.get("seed"))
        self.clock = clock
        self.log = log or logger.bind(component="market")

        # 最近一次生成的价格（供组合估值使用）
        self.last_prices: Dict[str, float] = {}

    async def initialize(self) -> bool:
        self.is_initialized = True
        self.log.info("[MARKET_INIT] Mock market data initialized", symbols=self.symbols)
        return True

    async def get_current_samples(self) -> List[MarketSample]:
        ensure_initialized(self.is_initialized, "MockMarketDataProvider")

        samples = []
        for symbol in self.symbols:
            try:
                samples.append(self.generate_sample(symbol))
            except ValueError as e:
                self.log.warning("[MARKET_FETCH] Skipping symbol", symbol=symbol, error=str(e))
        self.log.debug("[MARKET_FETCH] Samples generated", count=len(samples))
        return samples

    async def get_sample(self, symbol: str, chain: Optional[str] = None) -> Optional[MarketSample]:
        ensure_initialized(self.is_initialized, "MockMarketDataProvider")
        try:
            return self.generate_sample(symbol)
        except ValueError as e:
            self.log.warning("[MARKET_FETCH] Sample unavailable", symbol=symbol, chain=chain, error=str(e))
            return None

    def get_base_price(self, symbol: str) -> float:
        return self.base_prices.get(symbol, DEFAULT_PRICE)

    def get_last_price(self, symbol: str) -> Optional[float]:
        return self.last_prices.get(symbol)

    def generate_sample(self, symbol: str) -> MarketSample:
        base = self.get_base_price(symbol)
        price = base + (self.rng.random() - 0.5) * base * 0.02
        # 低价代币不能四舍五入到两位小数
        if base >= 1:
            price = round(price, 2)
        volume = round(self.rng.random() * 1_000_000 + 100_000)

        sample = MarketSample(
            symbol=symbol,
            price=price,
            volume=volume,
            timestamp=self.clock(),
            indicators=Indicators(
                rsi=float(self.rng.random() * 100),
                macd=float((self.rng.random() - 0.5) * 2),
                moving_average=float(base + (self.rng.random() - 0.5) * base * 0.01),
                volatility=float(self.rng.random() * 0.1),
            ),
        )
        self.last_prices[symbol] = sample.price
        return sample
