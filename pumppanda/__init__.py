"""
PumpPanda: recall-memory meme-token trading bot

- core: pydantic data model, clock, errors
- memory: EventStore (tagged, append-only event log with snapshots)
- strategy: MarketAnalyzer and SignalGenerator
- risk: RiskGate
- providers: market data and execution providers (mock / paper)
- analytics: PerformanceTracker
- agent: CycleOrchestrator and meme-token scanner
- config: PumpPandaConfig (YAML + .env)
"""

__version__ = "1.0.0"
