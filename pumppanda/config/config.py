import os
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field
from dotenv import load_dotenv

# 加载环境变量
load_dotenv()

DEFAULT_CONFIG_PATH = os.path.join("config", "pumppanda.yaml")


class _Section(BaseModel):
    model_config = ConfigDict(extra="allow")


class TradingSection(_Section):
    """交易配置"""
    enabled: bool = True
    trading_interval: float = 60.0  # 秒
    symbols: list[str] = ["PEPE", "SHIB", "DOGE", "FLOKI"]
    max_position_size: float = 10000.0
    max_daily_loss: float = 1000.0
    max_drawdown: float = 0.05  # 5%
    stop_loss_percentage: float = 0.02
    take_profit_percentage: float = 0.04
    max_open_positions: int = 5


class MemeTokenHuntingSection(_Section):
    """热门代币扫描配置"""
    enabled: bool = True
    scan_interval: float = 30.0  # 秒
    auto_buy: bool = False
    auto_sell: bool = False
    trending_tokens: list[str] = ["PEPE", "SHIB", "DOGE", "FLOKI", "BALD", "TOSHI"]
    blacklisted_tokens: list[str] = ["SAFEMOON"]
    whitelisted_tokens: list[str] = []


class MemorySection(_Section):
    """事件记忆配置"""
    storage_dir: str = os.path.join("data", "memory")
    snapshot_file: str = "memory.json"
    snapshot_every: int = 100
    retention_days: int = 30
    history_limit: int = 50


class PortfolioSection(_Section):
    """模拟盘配置"""
    initial_cash: float = 100000.0
    commission_rate: float = 0.0
    reports_dir: str = "reports"


class MarketDataSection(_Section):
    """行情数据配置"""
    provider: str = "mock"
    seed: Optional[int] = None
    base_prices: Dict[str, float] = Field(default_factory=dict)


class ChainSection(_Section):
    """单条区块链配置（只保留扫描需要的字段）"""
    enabled: bool = False
    network: str = "mainnet"
    preferred_dex: str = ""


class LoggingSection(_Section):
    """日志配置"""
    console_level: str = "INFO"
    file_level: str = "DEBUG"
    log_dir: Optional[str] = None
    retention: str = "14 days"
    intercept_std_logging: bool = True


def _default_chains() -> Dict[str, ChainSection]:
    return {
        "ethereum": ChainSection(enabled=True, network="mainnet", preferred_dex="uniswap"),
        "base": ChainSection(enabled=False, network="mainnet", preferred_dex="uniswap"),
        "solana": ChainSection(enabled=False, network="mainnet-beta", preferred_dex="raydium"),
    }


class PumpPandaConfig(BaseModel):
    """PumpPanda 配置类"""
    model_config = ConfigDict(extra="allow")

    name: str = "PumpPanda"
    version: str = "1.0.0"

    trading: TradingSection = Field(default_factory=TradingSection)
    meme_token_hunting: MemeTokenHuntingSection = Field(default_factory=MemeTokenHuntingSection)
    memory: MemorySection = Field(default_factory=MemorySection)
    portfolio: PortfolioSection = Field(default_factory=PortfolioSection)
    market_data: MarketDataSection = Field(default_factory=MarketDataSection)
    blockchains: Dict[str, ChainSection] = Field(default_factory=_default_chains)
    logging: LoggingSection = Field(default_factory=LoggingSection)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PumpPandaConfig':
        """从字典创建配置"""
        return cls(**config_dict)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None, apply_env: bool = True) -> 'PumpPandaConfig':
        """
        从 YAML 文件加载配置

        Args:
            path: 配置文件路径；为空时读取 PUMPPANDA_CONFIG 环境变量，再退回默认路径
            apply_env: 是否应用环境变量覆盖

        Raises:
            ValueError: 文件内容不是映射
        """
        path = path or os.getenv("PUMPPANDA_CONFIG", DEFAULT_CONFIG_PATH)
        data: Dict[str, Any] = {}
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config file must contain a mapping: {path}")

        config = cls.from_dict(data)
        if apply_env:
            config.apply_env_overrides()
        return config

    def apply_env_overrides(self) -> 'PumpPandaConfig':
        """环境变量覆盖（TRADING_INTERVAL / MAX_POSITION_SIZE / MAX_DAILY_LOSS）"""
        if os.getenv("TRADING_INTERVAL"):
            self.trading.trading_interval = float(os.environ["TRADING_INTERVAL"])
        if os.getenv("MAX_POSITION_SIZE"):
            self.trading.max_position_size = float(os.environ["MAX_POSITION_SIZE"])
        if os.getenv("MAX_DAILY_LOSS"):
            self.trading.max_daily_loss = float(os.environ["MAX_DAILY_LOSS"])
        return self

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return self.model_dump()

    def enabled_chains(self) -> list[str]:
        return [name for name, chain in self.blockchains.items() if chain.enabled]

    def to_flat_dict(self) -> Dict[str, Any]:
        """组件消费的扁平配置（按名称取值）"""
        t = self.trading
        return {
            "trading_interval": t.trading_interval,
            "scan_interval": self.meme_token_hunting.scan_interval,
            "scan_enabled": self.meme_token_hunting.enabled,
            "symbols": list(t.symbols),
            "max_position_size": t.max_position_size,
            "max_daily_loss": t.max_daily_loss,
            "max_drawdown": t.max_drawdown,
            "stop_loss_percentage": t.stop_loss_percentage,
            "take_profit_percentage": t.take_profit_percentage,
            "max_open_positions": t.max_open_positions,
            "auto_buy": self.meme_token_hunting.auto_buy,
            "trending_tokens": list(self.meme_token_hunting.trending_tokens),
            "blacklisted_tokens": list(self.meme_token_hunting.blacklisted_tokens),
            "whitelisted_tokens": list(self.meme_token_hunting.whitelisted_tokens),
            "enabled_chains": self.enabled_chains(),
            "retention_days": self.memory.retention_days,
            "snapshot_every": self.memory.snapshot_every,
            "history_limit": self.memory.history_limit,
            "initial_cash": self.portfolio.initial_cash,
            "commission_rate": self.portfolio.commission_rate,
            "reports_dir": self.portfolio.reports_dir,
            "seed": self.market_data.seed,
            "base_prices": dict(self.market_data.base_prices),
        }

    def validate_config(self) -> bool:
        """验证配置有效性"""
        t = self.trading
        if t.trading_interval <= 0:
            raise ValueError("Trading interval must be positive")

        if self.meme_token_hunting.enabled and self.meme_token_hunting.scan_interval <= 0:
            raise ValueError("Scan interval must be positive")

        if t.max_position_size <= 0:
            raise ValueError("Max position size must be positive")

        if t.max_daily_loss <= 0:
            raise ValueError("Max daily loss must be positive")

        if not 0 < t.max_drawdown < 1:
            raise ValueError("Max drawdown must be between 0 and 1")

        if t.stop_loss_percentage <= 0 or t.take_profit_percentage <= 0:
            raise ValueError("Stop loss and take profit percentages must be positive")

        if t.max_open_positions <= 0:
            raise ValueError("Max open positions must be positive")

        if self.memory.retention_days <= 0 or self.memory.snapshot_every <= 0:
            raise ValueError("Memory retention days and snapshot interval must be positive")

        if self.portfolio.initial_cash <= 0:
            raise ValueError("Initial cash must be positive")

        return True
