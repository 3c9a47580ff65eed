"""
EventStore 单元测试

测试覆盖:
- 写入 / 检索: 类型过滤、标签过滤、访问计数
- 排序: 重要性容差带、新近度容差带
- 相似检索、模式匹配
- 清理: 保留期 + 重要性，幂等
- 快照: 定期落盘、恢复、损坏快照降级、写入失败不抛异常
"""

import json
from datetime import datetime, timedelta

import pytest

from pumppanda.core import ManualClock, NotInitializedError, TradeExecution, TradingSignal
from pumppanda.memory import (
    EventStore,
    FileBackend,
    MarketEventPayload,
    RecallQuery,
    RecordKind,
    StorageBackend,
    TimeRange,
)


# ==================== Fixtures ====================

@pytest.fixture
def clock():
    """固定起点的手动时钟"""
    return ManualClock(datetime(2025, 6, 1, 12, 0, 0))


@pytest.fixture
def backend(tmp_path):
    """临时目录下的文件后端"""
    return FileBackend(base_path=tmp_path)


@pytest.fixture
def store(backend, clock):
    """已初始化的 EventStore"""
    s = EventStore(backend, clock=clock)
    s.initialize()
    return s


def make_trade(clock, symbol="PEPE", action="buy", trade_id="t1"):
    return TradeExecution(
        id=trade_id,
        symbol=symbol,
        action=action,
        quantity=100,
        price=1.5,
        timestamp=clock(),
        status="executed",
    )


def make_event(symbol="PEPE", event_type="bullish_token"):
    return MarketEventPayload(event_type=event_type, symbol=symbol, chain="ethereum")


class FailingBackend(StorageBackend):
    """读写都失败的后端"""

    def read_json(self, path):
        raise OSError("disk unavailable")

    def write_json(self, path, data):
        raise OSError("disk full")


# ==================== Append / Query ====================

class TestAppendAndQuery:
    """写入与检索测试"""

    def test_append_then_query_by_kind(self, store, clock):
        """按类型检索包含刚写入的记录"""
        rid = store.record_trade(make_trade(clock))
        store.record_market_event(make_event())

        results = store.query(kind=RecordKind.TRADE)
        assert [r.id for r in results] == [rid]

    def test_query_accepts_kind_string(self, store, clock):
        """类型可以用字符串传入"""
        store.record_trade(make_trade(clock))
        assert len(store.query(kind="trade")) == 1

    def test_ids_are_unique(self, store):
        """记录ID不重复"""
        ids = {store.record_market_event(make_event()) for _ in range(50)}
        assert len(ids) == 50

    def test_query_increments_access_count(self, store, clock):
        """每次检索返回的记录访问次数 +1，并刷新访问时间"""
        rid = store.record_market_event(make_event())
        record = store.get(rid)
        assert record.access_count == 0

        clock.advance(seconds=10)
        store.query(kind=RecordKind.MARKET_EVENT)
        assert record.access_count == 1
        assert record.last_accessed_at == clock()

        clock.advance(seconds=10)
        store.query(kind=RecordKind.MARKET_EVENT)
        assert record.access_count == 2
        assert record.last_accessed_at == clock()

    def test_unreturned_records_not_touched(self, store, clock):
        """未被返回的记录不计访问"""
        trade_id = store.record_trade(make_trade(clock))
        store.query(kind=RecordKind.MARKET_EVENT)
        assert store.get(trade_id).access_count == 0

    def test_tag_filter_matches_any(self, store, clock):
        """标签过滤为任一匹配"""
        store.record_trade(make_trade(clock, symbol="PEPE", trade_id="a"))
        store.record_trade(make_trade(clock, symbol="DOGE", trade_id="b"))
        store.record_trade(make_trade(clock, symbol="SHIB", trade_id="c"))

        results = store.query(tags=["PEPE", "DOGE"])
        assert {r.payload.symbol for r in results} == {"PEPE", "DOGE"}

    def test_time_range_is_inclusive(self, store, clock):
        """时间范围包含边界"""
        start = clock()
        first = store.record_market_event(make_event())
        clock.advance(minutes=5)
        second = store.record_market_event(make_event())
        clock.advance(minutes=5)
        store.record_market_event(make_event())

        results = store.query(time_range=TimeRange(start=start, end=start + timedelta(minutes=5)))
        assert {r.id for r in results} == {first, second}

    def test_min_importance_and_limit(self, store):
        """最低重要性过滤与数量截断"""
        for importance in (0.2, 0.6, 0.9):
            store.append(RecordKind.MARKET_EVENT, make_event(), importance=importance)

        assert len(store.query(min_importance=0.5)) == 2
        assert len(store.query(RecallQuery(limit=1))) == 1

    def test_default_tags_and_importance(self, store, clock):
        """便捷写入使用默认标签和重要性"""
        rid = store.record_trade(make_trade(clock, symbol="PEPE", action="sell"))
        record = store.get(rid)
        assert record.tags == ["trade_execution", "PEPE", "sell"]
        assert record.importance == 0.9

        sid = store.record_signal(TradingSignal(symbol="DOGE", action="buy", confidence=0.7))
        assert store.get(sid).tags == ["trading_signal", "DOGE", "recall_enhanced"]

    def test_importance_is_clamped(self, store):
        """重要性截断到 [0, 1]"""
        rid = store.append(RecordKind.MARKET_EVENT, make_event(), importance=1.7)
        assert store.get(rid).importance == 1.0

    def test_unknown_kind_rejected(self, store):
        """未知类型在写入时拒绝"""
        with pytest.raises(ValueError):
            store.append("price_tick", {"price": 1.0})

    def test_payload_shape_checked(self, store):
        """载荷结构与类型不符时拒绝"""
        with pytest.raises(ValueError):
            store.append(RecordKind.TRADE, {"unexpected": True})

    def test_query_before_initialize_raises(self, backend, clock):
        """未初始化时检索抛出 NotInitializedError"""
        s = EventStore(backend, clock=clock)
        s.append(RecordKind.MARKET_EVENT, make_event())
        with pytest.raises(NotInitializedError):
            s.query(kind=RecordKind.MARKET_EVENT)
        with pytest.raises(NotInitializedError):
            s.find_matching_pattern({"symbol": "PEPE"})


# ==================== Ranking ====================

class TestRanking:
    """排序测试"""

    def test_recency_breaks_importance_tie(self, store, clock):
        """重要性差 < 0.1 时，新近的记录排前"""
        older = store.append(RecordKind.MARKET_EVENT, make_event(), importance=0.9)
        clock.advance(seconds=120)
        newer = store.append(RecordKind.MARKET_EVENT, make_event(), importance=0.82)

        results = store.query(kind=RecordKind.MARKET_EVENT)
        assert [r.id for r in results] == [newer, older]

    def test_importance_outside_band_wins(self, store, clock):
        """重要性差超过 0.1 时，重要性高的排前"""
        important = store.append(RecordKind.MARKET_EVENT, make_event(), importance=0.9)
        clock.advance(hours=5)
        recent = store.append(RecordKind.MARKET_EVENT, make_event(), importance=0.5)

        results = store.query(kind=RecordKind.MARKET_EVENT)
        assert [r.id for r in results] == [important, recent]

    def test_access_count_breaks_full_tie(self, store, clock):
        """重要性和时间都在容差内时，访问次数多的排前"""
        first = store.append(RecordKind.MARKET_EVENT, make_event(symbol="A"), importance=0.5)
        second = store.append(RecordKind.MARKET_EVENT, make_event(symbol="B"), importance=0.5)

        store.query(tags=["B"])
        results = store.query(kind=RecordKind.MARKET_EVENT)
        assert [r.id for r in results] == [second, first]


# ==================== Similarity / Pattern ====================

class TestSimilarityAndPattern:
    """相似检索与模式匹配测试"""

    def test_find_similar_orders_by_score(self, store):
        """相似度降序"""
        close = store.record_signal(TradingSignal(symbol="PEPE", action="buy", confidence=0.8))
        far = store.record_signal(TradingSignal(symbol="DOGE", action="buy", confidence=0.4))

        results = store.find_similar({"symbol": "PEPE", "confidence": 0.8}, RecordKind.SIGNAL)
        assert [r.id for r in results] == [close, far]

    def test_find_similar_without_overlap_is_empty(self, store):
        """没有共同字段时返回空"""
        store.record_signal(TradingSignal(symbol="PEPE", action="buy", confidence=0.8))
        assert store.find_similar({"market_cap": 1e9}, RecordKind.SIGNAL) == []

    def test_find_similar_respects_limit(self, store):
        for i in range(5):
            store.record_signal(TradingSignal(symbol="PEPE", action="buy", confidence=0.1 * (i + 1)))
        assert len(store.find_similar({"symbol": "PEPE"}, "signal", limit=3)) == 3

    def test_pattern_equality_and_predicate(self, store):
        """模式值可以是期望值或谓词函数"""
        strong = store.record_signal(TradingSignal(symbol="PEPE", action="buy", confidence=0.9))
        store.record_signal(TradingSignal(symbol="PEPE", action="buy", confidence=0.45))
        store.record_signal(TradingSignal(symbol="DOGE", action="buy", confidence=0.9))

        results = store.find_matching_pattern({"symbol": "PEPE", "confidence": lambda c: c > 0.5})
        assert [r.id for r in results] == [strong]

    def test_pattern_missing_key_excluded(self, store, clock):
        """缺少模式字段的记录不匹配"""
        store.record_trade(make_trade(clock))
        store.record_market_event(make_event())

        results = store.find_matching_pattern({"event_type": "bullish_token"})
        assert len(results) == 1
        assert results[0].kind == RecordKind.MARKET_EVENT


# ==================== Stats / Cleanup ====================

class TestStatsAndCleanup:
    """统计与清理测试"""

    def test_stats(self, store, clock):
        store.record_trade(make_trade(clock))
        clock.advance(minutes=1)
        store.record_market_event(make_event())

        stats = store.stats()
        assert stats["total_records"] == 2
        assert stats["counts_by_kind"] == {"trade": 1, "market_event": 1}
        assert stats["counts_by_tag"]["PEPE"] == 2
        assert stats["last_updated_at"] == clock()

    def test_cleanup_removes_old_unimportant(self, store, clock):
        """只删除过期且重要性 < 0.5 的记录"""
        old_low = store.append(RecordKind.MARKET_EVENT, make_event(), importance=0.3)
        old_high = store.append(RecordKind.MARKET_EVENT, make_event(), importance=0.8)
        clock.advance(days=40)
        new_low = store.append(RecordKind.MARKET_EVENT, make_event(), importance=0.1)

        removed = store.cleanup(30)
        assert removed == 1
        assert store.get(old_low) is None
        assert store.get(old_high) is not None
        assert store.get(new_low) is not None

    def test_cleanup_is_idempotent(self, store, clock):
        """连续清理两次，第二次不再删除"""
        for _ in range(3):
            store.append(RecordKind.MARKET_EVENT, make_event(), importance=0.2)
        clock.advance(days=31)

        assert store.cleanup(30) == 3
        assert store.cleanup(30) == 0

    def test_cleanup_updates_tag_index(self, store, clock):
        store.append(RecordKind.MARKET_EVENT, make_event(symbol="GONE"), importance=0.2)
        clock.advance(days=31)
        store.cleanup(30)
        assert store.query(tags=["GONE"]) == []


# ==================== Snapshot ====================

class TestSnapshot:
    """快照测试"""

    def test_periodic_snapshot(self, backend, clock, tmp_path):
        """每 N 次写入自动快照"""
        s = EventStore(backend, snapshot_every=3, clock=clock)
        s.initialize()
        s.record_market_event(make_event())
        s.record_market_event(make_event())
        assert not (tmp_path / "memory.json").exists()

        s.record_market_event(make_event())
        data = json.loads((tmp_path / "memory.json").read_text(encoding="utf-8"))
        assert len(data["records"]) == 3

    def test_save_and_restore(self, store, backend, clock):
        """快照恢复后记录完全一致"""
        trade_id = store.record_trade(make_trade(clock))
        store.record_market_event(make_event())
        store.query(kind=RecordKind.TRADE)
        assert store.save()

        restored = EventStore(backend, clock=clock)
        restored.initialize()
        assert len(restored) == 2

        record = restored.get(trade_id)
        assert record.kind == RecordKind.TRADE
        assert isinstance(record.payload, TradeExecution)
        assert record.payload.symbol == "PEPE"
        assert record.access_count == 1
        assert record.tags == ["trade_execution", "PEPE", "buy"]

    def test_restore_replaces_state(self, store, backend, clock):
        store.record_market_event(make_event())
        store.save()
        store.record_market_event(make_event())
        assert len(store) == 2

        assert store.restore() == 1
        assert len(store) == 1

    def test_corrupt_snapshot_starts_empty(self, backend, clock, tmp_path):
        """快照损坏时以空库启动"""
        (tmp_path / "memory.json").write_text("{not json", encoding="utf-8")
        s = EventStore(backend, clock=clock)
        s.initialize()
        assert len(s) == 0

    def test_malformed_record_skipped(self, backend, clock, tmp_path):
        """单条损坏记录被跳过"""
        good = EventStore(backend, clock=clock)
        good.initialize()
        good.record_market_event(make_event())
        good.save()

        data = json.loads((tmp_path / "memory.json").read_text(encoding="utf-8"))
        data["records"].append({"kind": "nonsense", "payload": {}})
        data["records"].append({"kind": "trade", "payload": {"symbol": "X"}})
        (tmp_path / "memory.json").write_text(json.dumps(data), encoding="utf-8")

        s = EventStore(backend, clock=clock)
        s.initialize()
        assert len(s) == 1

    def test_write_failure_is_not_raised(self, clock):
        """快照写入失败只记录日志，不回滚写入"""
        s = EventStore(FailingBackend(), snapshot_every=1, clock=clock)
        s.initialize()
        rid = s.record_market_event(make_event())

        assert s.get(rid) is not None
        assert s.save() is False

    def test_record_without_created_at_skipped(self, backend, clock, tmp_path):
        """缺少创建时间的记录不会被补成当前时间，而是跳过"""
        good = EventStore(backend, clock=clock)
        good.initialize()
        rid = good.record_market_event(make_event())
        good.save()

        data = json.loads((tmp_path / "memory.json").read_text(encoding="utf-8"))
        broken = dict(data["records"][0], id="rec_broken")
        del broken["created_at"]
        data["records"].append(broken)
        (tmp_path / "memory.json").write_text(json.dumps(data), encoding="utf-8")

        clock.advance(days=3)
        s = EventStore(backend, clock=clock)
        s.initialize()
        assert len(s) == 1
        assert s.get("rec_broken") is None
        assert s.get(rid).created_at == datetime(2025, 6, 1, 12, 0, 0)

    def test_backend_needs_only_read_and_write(self, clock):
        """只实现整份读写的后端即可完成快照往返"""

        class DictBackend(StorageBackend):
            def __init__(self):
                self.files = {}

            def read_json(self, path):
                return self.files.get(str(path))

            def write_json(self, path, data):
                self.files[str(path)] = json.loads(json.dumps(data))

        memory = DictBackend()
        s = EventStore(memory, clock=clock)
        s.initialize()
        s.record_market_event(make_event())
        assert s.save()

        restored = EventStore(memory, clock=clock)
        restored.initialize()
        assert len(restored) == 1
        assert list(memory.files) == ["memory.json"]
