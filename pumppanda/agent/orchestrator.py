"""
交易周期编排

状态机：IDLE -> RUNNING -> PAUSED -> RUNNING -> STOPPED

两个独立的定时任务（交易周期、热门代币扫描）共用一个 running 标志：
- pause: 只翻转标志，进行中的周期跑完后定时任务自行退出
- resume: 重新创建两个定时任务（旧任务按代数判断后退出，不会重复）
- shutdown: 取消等待中的定时任务（进行中的周期跑完） -> 平仓 -> 记忆落盘 -> 保存绩效报告

一个交易周期：
行情 -> 分析 -> 组合风险评估 -> (可接受) 生成信号 -> 逐个校验 -> 执行 -> 记录成交
-> 无论是否成交都记录一条 cycle 记录
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from loguru import logger

from ..analytics.performance import PerformanceTracker
from ..core.clock import Clock, system_clock
from ..core.errors import ensure_initialized
from ..core.schemas import TradeExecution, TradingSignal
from ..memory.backends.file_backend import FileBackend
from ..memory.schemas import CyclePayload
from ..memory.store import EventStore
from ..providers.base import ExecutionProvider, MarketDataProvider
from ..providers.mock_market import MockMarketDataProvider
from ..providers.paper_portfolio import PaperPortfolio
from ..risk.gate import RiskGate
from ..strategy.analyzer import MarketAnalyzer
from ..strategy.signals import SignalGenerator
from .scanner import MemeTokenScanner

Sleep = Callable[[float], Awaitable[Any]]


class OrchestratorState(str, Enum):
    """编排器状态"""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class CycleOrchestrator:
    """
    交易周期编排器

    使用示例:
        orchestrator = CycleOrchestrator.from_config(PumpPandaConfig.load())
        await orchestrator.initialize()
        await orchestrator.start()
        ...
        await orchestrator.shutdown()
    """

    def __init__(
        self,
        config: Dict[str, Any],
        market: MarketDataProvider,
        executor: ExecutionProvider,
        store: EventStore,
        analyzer: Optional[MarketAnalyzer] = None,
        generator: Optional[SignalGenerator] = None,
        risk_gate: Optional[RiskGate] = None,
        performance: Optional[PerformanceTracker] = None,
        clock: Clock = system_clock,
        sleep: Sleep = asyncio.sleep,
        log=None,
    ):
        """
        Args:
            config: 扁平配置（trading_interval / scan_interval / scan_enabled / retention_days ...）
            market: 行情数据源
            executor: 执行方
            store: 事件记忆
            sleep: 定时器使用的等待函数（测试时可替换）
        """
        self.config = config
        self.market = market
        self.executor = executor
        self.store = store
        self.analyzer = analyzer or MarketAnalyzer(config)
        self.generator = generator or SignalGenerator(config, clock=clock)
        self.risk_gate = risk_gate or RiskGate(config)
        self.performance = performance
        self.clock = clock
        self.sleep = sleep
        self.log = log or logger.bind(component="orchestrator")

        self.trading_interval = float(config.get("trading_interval", 60.0))
        self.scan_interval = float(config.get("scan_interval", 30.0))
        self.scan_enabled = bool(config.get("scan_enabled", True))
        self.retention_days = int(config.get("retention_days", 30))

        self.scanner = MemeTokenScanner(
            config,
            market=market,
            executor=executor,
            store=store,
            analyzer=self.analyzer,
            generator=self.generator,
            risk_gate=self.risk_gate,
            submit=self.execute_signals,
        )

        self.state = OrchestratorState.IDLE
        self.is_running = False
        self.cycle_count = 0
        self._initialized = False
        self._generation = 0
        self._tasks: List[asyncio.Task] = []
        self._ticking: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config, clock: Clock = system_clock) -> 'CycleOrchestrator':
        """按 PumpPandaConfig 组装模拟盘组件"""
        flat = config.to_flat_dict()
        risk_gate = RiskGate(flat)
        market = MockMarketDataProvider(flat, clock=clock)
        executor = PaperPortfolio(flat, risk_gate=risk_gate, price_source=market.get_last_price, clock=clock)
        store = EventStore(
            FileBackend(config.memory.storage_dir),
            snapshot_path=config.memory.snapshot_file,
            snapshot_every=config.memory.snapshot_every,
            clock=clock,
        )
        performance = PerformanceTracker(
            {"reports_dir": flat["reports_dir"], "initial_value": flat["initial_cash"]},
            clock=clock,
        )
        return cls(
            flat,
            market=market,
            executor=executor,
            store=store,
            risk_gate=risk_gate,
            performance=performance,
            clock=clock,
        )

    # ==================== 生命周期 ====================

    async def initialize(self) -> bool:
        """初始化所有组件（恢复记忆后执行保留期清理）"""
        self.log.info("[AGENT_INIT] Initializing components")
        await self.market.initialize()
        await self.executor.initialize()
        self.store.initialize()
        self.store.cleanup(self.retention_days)
        self._initialized = True
        self.log.info("[AGENT_INIT] All components initialized", records=len(self.store))
        return True

    async def start(self) -> bool:
        ensure_initialized(self._initialized, "CycleOrchestrator")
        if self.state == OrchestratorState.RUNNING:
            self.log.warning("[AGENT_STATE] Already running")
            return False
        if self.state == OrchestratorState.STOPPED:
            self.log.warning("[AGENT_STATE] Cannot start after shutdown")
            return False

        self.is_running = True
        self.state = OrchestratorState.RUNNING
        self._arm_timers()
        self.log.info("[AGENT_STATE] Trading started", trading_interval=self.trading_interval)
        return True

    async def pause(self) -> bool:
        """翻转 running 标志，进行中的周期继续跑完"""
        if self.state != OrchestratorState.RUNNING:
            return False
        self.is_running = False
        self.state = OrchestratorState.PAUSED
        self.log.info("[AGENT_STATE] Trading paused")
        return True

    async def resume(self) -> bool:
        if self.state != OrchestratorState.PAUSED:
            return False
        self.is_running = True
        self.state = OrchestratorState.RUNNING
        self._arm_timers()
        self.log.info("[AGENT_STATE] Trading resumed")
        return True

    async def shutdown(self) -> bool:
        """停止定时任务（等待进行中的周期），平仓，记忆落盘，保存绩效报告"""
        if self.state == OrchestratorState.STOPPED:
            return False
        self.log.info("[AGENT_STATE] Shutting down")
        self.is_running = False
        self.state = OrchestratorState.STOPPED
        self._generation += 1
        await self._cancel_timers()

        if self._initialized:
            try:
                for execution in await self.executor.close_all_positions():
                    self._record_execution(execution)
            except Exception as e:
                self.log.error("[AGENT_STATE] Failed to close positions", error=str(e))
            self.store.save()
            if self.performance is not None:
                self.performance.save_report()

        self.log.info("[AGENT_STATE] Shutdown completed", cycles=self.cycle_count)
        return True

    # ==================== 定时任务 ====================

    def _arm_timers(self):
        self._generation += 1
        generation = self._generation
        self._tasks = [t for t in self._tasks if not t.done()]
        self._tasks.append(asyncio.create_task(
            self._timer_loop("trading", self.trading_interval, self.run_trading_cycle, generation)
        ))
        if self.scan_enabled:
            self._tasks.append(asyncio.create_task(
                self._timer_loop("scan", self.scan_interval, self.run_scan, generation)
            ))

    def _timer_live(self, generation: int) -> bool:
        return self.is_running and generation == self._generation

    async def _timer_loop(self, name: str, interval: float, tick: Callable[[], Awaitable[Any]], generation: int):
        task = asyncio.current_task()
        while True:
            await self.sleep(interval)
            if not self._timer_live(generation):
                break
            self._ticking.add(task)
            try:
                await tick()
            except Exception as e:
                self.log.error("[AGENT_TIMER] Tick failed", timer=name, error=str(e))
            finally:
                self._ticking.discard(task)
            if not self._timer_live(generation):
                break
        self.log.debug("[AGENT_TIMER] Timer stopped", timer=name)

    async def _cancel_timers(self):
        """取消等待中的定时任务；正在执行周期的任务等它跑完"""
        tasks, self._tasks = self._tasks, []
        current = asyncio.current_task()
        pending = [t for t in tasks if t is not current]
        for task in pending:
            if task not in self._ticking:
                task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ==================== 交易周期 ====================

    async def run_trading_cycle(self) -> Optional[Dict[str, Any]]:
        """
        执行一个交易周期

        Returns:
            周期摘要；没有行情时返回 None（不记录 cycle）
        """
        ensure_initialized(self._initialized, "CycleOrchestrator")

        try:
            samples = await self.market.get_current_samples()
        except Exception as e:
            self.log.error("[AGENT_CYCLE] Failed to fetch market data", error=str(e))
            samples = []

        if not samples:
            self.log.warning("[AGENT_CYCLE] No market data available for trading cycle")
            return None

        prices = {s.symbol: s.price for s in samples}
        self.executor.mark_prices(prices)

        analyses = self.analyzer.analyze_market(samples, self.store)
        portfolio = await self.executor.get_portfolio_snapshot()
        assessment = self.risk_gate.assess_risk(analyses, portfolio)

        signals: List[TradingSignal] = []
        executions: List[TradeExecution] = []
        if assessment.is_acceptable:
            signals = self.generator.generate_signals(analyses, assessment, prices)
            executions = await self.execute_signals(signals)
        else:
            self.log.warning("[AGENT_CYCLE] Risk not acceptable, skipping signals", score=assessment.risk_score)

        portfolio = await self.executor.get_portfolio_snapshot()
        if self.performance is not None:
            self.performance.record_snapshot(portfolio)

        record_id = self.store.record_cycle(CyclePayload(
            timestamp=self.clock(),
            samples=samples,
            analyses=analyses,
            assessment=assessment,
            portfolio=portfolio,
        ))
        self.cycle_count += 1

        self.log.info(
            "[AGENT_CYCLE] Trading cycle completed",
            cycle=self.cycle_count,
            samples=len(samples),
            signals=len(signals),
            executed=sum(1 for e in executions if e.status == "executed"),
        )
        return {
            "record_id": record_id,
            "samples": len(samples),
            "analyses": analyses,
            "assessment": assessment,
            "signals": signals,
            "executions": executions,
            "portfolio": portfolio,
        }

    async def execute_signals(self, signals: List[TradingSignal]) -> List[TradeExecution]:
        """逐个校验并执行信号，单个信号失败不影响其它信号"""
        executions: List[TradeExecution] = []
        for signal in signals:
            try:
                validation = self.risk_gate.validate_signal(signal)
                if not validation.is_valid:
                    continue
                execution = await self.executor.execute(signal)
                self._record_execution(execution)
                executions.append(execution)
            except Exception as e:
                self.log.error("[AGENT_TRADE] Failed to execute signal", symbol=signal.symbol, action=signal.action, error=str(e))
        return executions

    async def run_scan(self) -> List[Any]:
        ensure_initialized(self._initialized, "CycleOrchestrator")
        return await self.scanner.scan()

    def _record_execution(self, execution: TradeExecution):
        self.store.record_trade(execution)
        if self.performance is not None:
            self.performance.record_trade(execution)

    # ==================== 状态 ====================

    async def get_status(self) -> Dict[str, Any]:
        portfolio = None
        if self._initialized:
            portfolio = (await self.executor.get_portfolio_snapshot()).model_dump(mode="json")
        return {
            "state": self.state.value,
            "is_running": self.is_running,
            "cycles": self.cycle_count,
            "enabled_chains": list(self.config.get("enabled_chains", [])),
            "portfolio": portfolio,
            "performance": self.performance.get_metrics() if self.performance is not None else None,
            "memory": self.store.stats(),
            "risk": self.risk_gate.get_state(),
        }
