"""
命令行测试（typer CliRunner）
"""

import json

import pytest
import yaml
from loguru import logger
from typer.testing import CliRunner

from pumppanda.apps.cli import app


@pytest.fixture
def cfg_path(tmp_path, monkeypatch):
    for key in ("PUMPPANDA_CONFIG", "TRADING_INTERVAL", "MAX_POSITION_SIZE", "MAX_DAILY_LOSS"):
        monkeypatch.delenv(key, raising=False)
    path = tmp_path / "pumppanda.yaml"
    path.write_text(yaml.safe_dump({
        "trading": {"symbols": ["PEPE", "DOGE"]},
        "memory": {"storage_dir": str(tmp_path / "memory")},
        "portfolio": {"reports_dir": str(tmp_path / "reports")},
        "market_data": {"seed": 7},
        "logging": {"log_dir": str(tmp_path / "logs"), "console_level": "ERROR"},
    }), encoding="utf-8")
    yield path
    logger.remove()


runner = CliRunner()


class TestCli:
    """命令测试"""

    def test_status_on_empty_store(self, cfg_path):
        result = runner.invoke(app, ["status", "--cfg", str(cfg_path)])
        assert result.exit_code == 0
        stats = json.loads(result.output[result.output.index("{"):])
        assert stats["total_records"] == 0

    def test_cycle_then_status(self, cfg_path, tmp_path):
        result = runner.invoke(app, ["cycle", "--cfg", str(cfg_path)])
        assert result.exit_code == 0
        assert "[CYCLE] Samples: 2" in result.output
        assert (tmp_path / "memory" / "memory.json").exists()
        assert list((tmp_path / "logs").iterdir())

        result = runner.invoke(app, ["status", "-c", str(cfg_path)])
        stats = json.loads(result.output[result.output.index("{"):])
        assert stats["counts_by_kind"]["cycle"] == 1

    def test_invalid_config_fails(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"trading": {"max_drawdown": 2}}), encoding="utf-8")
        result = runner.invoke(app, ["status", "--cfg", str(path)])
        assert result.exit_code != 0
        assert isinstance(result.exception, ValueError)
