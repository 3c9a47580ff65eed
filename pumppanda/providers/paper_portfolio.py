"""
模拟盘组合（paper trading）

- 现金 + 均价持仓，买入校验资金，卖出校验持仓
- 单笔价值不超过 max_position_size
- 卖出计算已实现盈亏，亏损推送给 RiskGate.update_daily_loss
- 持仓数变化推送给 RiskGate.update_open_positions
- 交易日变化时调用 RiskGate.reset_daily_loss
"""

from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional
from uuid import uuid4

from loguru import logger

from ..core.clock import Clock, system_clock
from ..core.errors import ensure_initialized
from ..core.schemas import PortfolioSnapshot, Position, TradeExecution, TradingSignal
from ..risk.gate import RiskGate
from .base import ExecutionProvider

PriceSource = Callable[[str], Optional[float]]


class PaperPortfolio(ExecutionProvider):
    """模拟盘执行方"""

    def __init__(
        self,
        config: Dict[str, Any],
        risk_gate: Optional[RiskGate] = None,
        price_source: Optional[PriceSource] = None,
        clock: Clock = system_clock,
        log=None,
    ):
        """
        Args:
            config: initial_cash（初始资金，默认 100000）、max_position_size、commission_rate
            risk_gate: 接收亏损与持仓数的风险闸门
            price_source: symbol -> 最新价格，信号未带价格时使用
            clock: 时间源
            log: 绑定了组件上下文的 logger
        """
        super().__init__(config)
        self.initial_cash = float(config.get("initial_cash", 100000.0))
        self.max_position_size = float(config.get("max_position_size", 10000))
        self.commission_rate = float(config.get("commission_rate", 0.0))
        self.risk_gate = risk_gate
        self.price_source = price_source
        self.clock = clock
        self.log = log or logger.bind(component="portfolio")

        self.cash = self.initial_cash
        self.positions: Dict[str, Position] = {}
        self.trade_history: List[TradeExecution] = []
        self.realized_pnl = 0.0
        self._trading_day: Optional[date] = None

    async def initialize(self) -> bool:
        self._trading_day = self.clock().date()
        self.is_initialized = True
        self._push_open_positions()
        self.log.info("[PORTFOLIO_INIT] Paper portfolio initialized", cash=self.cash)
        return True

    # ==================== 执行 ====================

    async def execute(self, signal: TradingSignal) -> TradeExecution:
        """
        执行交易信号

        校验失败返回 status=failed 的执行结果，不抛异常。
        """
        ensure_initialized(self.is_initialized, "PaperPortfolio")
        if signal.action == "hold":
            raise ValueError("Cannot execute hold signal")

        self._roll_trading_day()

        price = self._resolve_price(signal.symbol, signal.price)
        execution = TradeExecution(
            id=f"trade_{uuid4().hex[:12]}",
            symbol=signal.symbol,
            action=signal.action,
            quantity=signal.quantity,
            price=price or 0.0,
            timestamp=self.clock(),
            status="pending",
            message="Trade execution initiated",
        )

        reason = self._validate(signal, price)
        if reason:
            execution.status = "failed"
            execution.message = f"Trade validation failed: {reason}"
            self.log.warning("[PORTFOLIO_TRADE] Trade rejected", symbol=signal.symbol, action=signal.action, reason=reason)
            self.trade_history.append(execution)
            return execution

        if signal.action == "buy":
            self._apply_buy(signal, price)
        else:
            execution.realized_pnl = self._apply_sell(signal.symbol, signal.quantity, price)

        execution.status = "executed"
        execution.message = "Trade executed successfully"
        self.trade_history.append(execution)
        self.log.info(
            "[PORTFOLIO_TRADE] Trade executed",
            symbol=signal.symbol,
            action=signal.action,
            quantity=signal.quantity,
            price=price,
            realized_pnl=execution.realized_pnl,
        )
        return execution

    async def close_all_positions(self) -> List[TradeExecution]:
        """按最新价格平掉所有持仓"""
        ensure_initialized(self.is_initialized, "PaperPortfolio")
        self.log.info("[PORTFOLIO_CLOSE] Closing all positions", positions=len(self.positions))

        executions = []
        for symbol in list(self.positions):
            position = self.positions[symbol]
            signal = TradingSignal(
                symbol=symbol,
                action="sell",
                quantity=position.quantity,
                price=self._resolve_price(symbol, 0.0) or position.current_price,
                strategy="close_all",
            )
            executions.append(await self.execute(signal))
        return executions

    # ==================== 状态 ====================

    async def get_portfolio_snapshot(self) -> PortfolioSnapshot:
        ensure_initialized(self.is_initialized, "PaperPortfolio")
        return self.snapshot()

    def snapshot(self) -> PortfolioSnapshot:
        positions = []
        market_value = 0.0
        unrealized = 0.0
        for position in self.positions.values():
            market_value += position.quantity * position.current_price
            unrealized += position.pnl
            positions.append(position.model_copy())

        current_value = self.cash + market_value
        return PortfolioSnapshot(
            initial_value=self.initial_cash,
            current_value=current_value,
            cash=self.cash,
            total_pnl=unrealized,
            total_pnl_percentage=(current_value - self.initial_cash) / self.initial_cash * 100 if self.initial_cash else 0.0,
            positions=positions,
        )

    def mark_prices(self, prices: Mapping[str, float]):
        """按最新价格重估持仓"""
        for symbol, price in prices.items():
            position = self.positions.get(symbol)
            if position is None or not price:
                continue
            position.current_price = price
            position.pnl = (price - position.entry_price) * position.quantity
            position.pnl_percentage = (price - position.entry_price) / position.entry_price * 100

    # ==================== 内部方法 ====================

    def _resolve_price(self, symbol: str, price: float) -> Optional[float]:
        if price:
            return price
        if self.price_source is not None:
            latest = self.price_source(symbol)
            if latest:
                return latest
        position = self.positions.get(symbol)
        return position.current_price if position else None

    def _validate(self, signal: TradingSignal, price: Optional[float]) -> Optional[str]:
        if not price:
            return "No price available"
        if signal.quantity <= 0:
            return "Quantity must be positive"

        value = signal.quantity * price
        if signal.action == "buy":
            if self.cash < value * (1 + self.commission_rate):
                return "Insufficient cash"
        else:
            position = self.positions.get(signal.symbol)
            if position is None or position.quantity < signal.quantity:
                return "Insufficient position size"

        if signal.strategy != "close_all" and value > self.max_position_size:
            return "Position size exceeds limit"
        return None

    def _apply_buy(self, signal: TradingSignal, price: float):
        cost = signal.quantity * price
        self.cash -= cost * (1 + self.commission_rate)

        existing = self.positions.get(signal.symbol)
        if existing is not None:
            total_quantity = existing.quantity + signal.quantity
            existing.entry_price = (existing.quantity * existing.entry_price + cost) / total_quantity
            existing.quantity = total_quantity
            existing.current_price = price
            existing.pnl = (price - existing.entry_price) * total_quantity
            existing.pnl_percentage = (price - existing.entry_price) / existing.entry_price * 100
        else:
            self.positions[signal.symbol] = Position(
                symbol=signal.symbol,
                quantity=signal.quantity,
                entry_price=price,
                current_price=price,
                entry_time=self.clock(),
                stop_loss=signal.stop_loss,
                take_profit=signal.take_profit,
            )
            self._push_open_positions()

    def _apply_sell(self, symbol: str, quantity: float, price: float) -> float:
        position = self.positions[symbol]
        proceeds = quantity * price
        pnl = (price - position.entry_price) * quantity - proceeds * self.commission_rate
        self.cash += proceeds * (1 - self.commission_rate)
        self.realized_pnl += pnl

        if position.quantity == quantity:
            del self.positions[symbol]
            self._push_open_positions()
        else:
            position.quantity -= quantity

        if pnl < 0 and self.risk_gate is not None:
            self.risk_gate.update_daily_loss(-pnl)
        return pnl

    def _push_open_positions(self):
        if self.risk_gate is not None:
            self.risk_gate.update_open_positions(len(self.positions))

    def _roll_trading_day(self):
        today = self.clock().date()
        if self._trading_day is not None and today != self._trading_day and self.risk_gate is not None:
            self.risk_gate.reset_daily_loss()
        self._trading_day = today
