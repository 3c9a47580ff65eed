from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from pumppanda.agent.orchestrator import CycleOrchestrator
from pumppanda.config.config import PumpPandaConfig
from pumppanda.memory.backends.file_backend import FileBackend
from pumppanda.memory.store import EventStore
from pumppanda.utils.io import canonical_json
from pumppanda.utils.logging_setup import setup_logging


app = typer.Typer(add_completion=False, help="PumpPanda meme-token trading bot (paper trading)")


def _load_config(cfg: Optional[Path]) -> PumpPandaConfig:
    config = PumpPandaConfig.load(str(cfg) if cfg else None)
    config.validate_config()
    setup_logging(config.to_dict())
    return config


@app.command()
def run(
    cfg: Optional[Path] = typer.Option(None, "--cfg", "-c", help="Path to YAML config (default: $PUMPPANDA_CONFIG or config/pumppanda.yaml)"),
    duration: Optional[float] = typer.Option(None, help="Stop after this many seconds (default: run until interrupted)"),
):
    """Start the trading and meme-token scan timers."""
    config = _load_config(cfg)
    orchestrator = CycleOrchestrator.from_config(config)

    async def _main():
        await orchestrator.initialize()
        await orchestrator.start()
        try:
            if duration is not None:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()
        finally:
            await orchestrator.shutdown()

    typer.echo(f"[PUMPPANDA] Symbols: {config.trading.symbols}")
    typer.echo(f"[PUMPPANDA] Trading interval: {config.trading.trading_interval}s")
    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        typer.echo("[PUMPPANDA] Interrupted")


@app.command()
def cycle(
    cfg: Optional[Path] = typer.Option(None, "--cfg", "-c", help="Path to YAML config"),
):
    """Run a single trading cycle and print the result."""
    config = _load_config(cfg)
    orchestrator = CycleOrchestrator.from_config(config)

    async def _main():
        await orchestrator.initialize()
        report = await orchestrator.run_trading_cycle()
        orchestrator.store.save()
        return report

    report = asyncio.run(_main())
    if report is None:
        typer.echo("[CYCLE] No market data available")
        raise typer.Exit(code=1)

    assessment = report["assessment"]
    typer.echo(f"[CYCLE] Samples: {report['samples']}")
    typer.echo(f"[CYCLE] Risk: {assessment.risk_level} (score {assessment.risk_score})")
    for a in report["analyses"]:
        typer.echo(f"  - {a.symbol}: {a.trend} conf={a.confidence:.2f} risk={a.risk_level} tags={','.join(a.signals)}")
    for e in report["executions"]:
        typer.echo(f"  * {e.action} {e.quantity} {e.symbol} @ {e.price} -> {e.status}")
    typer.echo(f"[CYCLE] Portfolio value: {report['portfolio'].current_value:.2f}")


@app.command()
def status(
    cfg: Optional[Path] = typer.Option(None, "--cfg", "-c", help="Path to YAML config"),
):
    """Print event-store statistics from the saved snapshot."""
    config = _load_config(cfg)
    store = EventStore(
        FileBackend(config.memory.storage_dir),
        snapshot_path=config.memory.snapshot_file,
        snapshot_every=config.memory.snapshot_every,
    )
    store.initialize()
    typer.echo(canonical_json(store.stats(), indent=2))


if __name__ == "__main__":
    app()
