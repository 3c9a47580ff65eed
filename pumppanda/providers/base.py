from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..core.schemas import MarketSample, PortfolioSnapshot, TradeExecution, TradingSignal


class MarketDataProvider(ABC):
    """行情数据源基础抽象类"""

    def __init__(self, config: Dict[str, Any]):
        """初始化数据源"""
        self.config = config
        self.symbols: List[str] = list(config.get("symbols", []))
        self.is_initialized = False

    @abstractmethod
    async def initialize(self) -> bool:
        """初始化数据源"""
        pass

    @abstractmethod
    async def get_current_samples(self) -> List[MarketSample]:
        """获取所有已启用品种的当前行情

        Returns:
            行情样本列表（单个品种失败时可以缺失）
        """
        pass

    @abstractmethod
    async def get_sample(self, symbol: str, chain: Optional[str] = None) -> Optional[MarketSample]:
        """获取单个品种（或某条链上的代币）的行情

        Args:
            symbol: 品种 / 代币符号
            chain: 区块链名称（可选）

        Returns:
            行情样本，不可用时返回 None
        """
        pass


class ExecutionProvider(ABC):
    """执行方（组合管理）基础抽象类"""

    def __init__(self, config: Dict[str, Any]):
        """初始化执行方"""
        self.config = config
        self.is_initialized = False

    @abstractmethod
    async def initialize(self) -> bool:
        """初始化执行方"""
        pass

    @abstractmethod
    async def execute(self, signal: TradingSignal) -> TradeExecution:
        """执行交易信号

        Args:
            signal: 交易信号

        Returns:
            执行结果（executed / failed / pending）
        """
        pass

    @abstractmethod
    async def get_portfolio_snapshot(self) -> PortfolioSnapshot:
        """获取投资组合快照"""
        pass

    @abstractmethod
    async def close_all_positions(self) -> List[TradeExecution]:
        """平掉所有持仓

        Returns:
            平仓执行结果列表
        """
        pass

    def mark_prices(self, prices: Dict[str, float]):
        """按最新行情重估持仓（默认不处理）"""
        return None
