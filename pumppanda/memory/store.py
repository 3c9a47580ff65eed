"""
事件记忆（recall memory）

只追加的带标签事件日志，支持：
1. 多条件过滤（类型 / 标签 / 时间 / 重要性）
2. 相关性排序（重要性 → 新近度 → 访问次数，带容差带）
3. 相似记录检索、结构化模式匹配
4. 整份快照落盘与启动时恢复
5. 保留期清理（过期且不重要的记录）

读取是可观测的写操作：每条被返回的记录 access_count +1。
"""

from __future__ import annotations

from datetime import datetime, timedelta
from functools import cmp_to_key
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Union
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel

from ..core.clock import Clock, system_clock
from ..core.errors import ensure_initialized
from ..core.schemas import TradeExecution, TradingSignal
from .backends.base import StorageBackend
from .schemas import (
    CyclePayload,
    MarketEventPayload,
    MemoryRecord,
    RecallQuery,
    RecordKind,
    TimeRange,
    build_payload,
    coerce_kind,
)

SNAPSHOT_VERSION = 1

# 排序容差带
IMPORTANCE_TIE_BAND = 0.1
RECENCY_TIE_BAND_SECONDS = 60.0

# 清理时低于该重要性的过期记录会被删除
CLEANUP_IMPORTANCE_FLOOR = 0.5


def _compare_relevance(a: MemoryRecord, b: MemoryRecord) -> int:
    if abs(a.importance - b.importance) > IMPORTANCE_TIE_BAND:
        return -1 if a.importance > b.importance else 1

    time_diff = (b.created_at - a.created_at).total_seconds()
    if abs(time_diff) > RECENCY_TIE_BAND_SECONDS:
        return 1 if time_diff > 0 else -1

    return b.access_count - a.access_count


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def field_similarity(sample: Mapping[str, Any], data: Mapping[str, Any]) -> Optional[float]:
    """
    逐字段相似度

    完全相等记 1，数值字段记 1 - |Δ| / max(|a|, |b|)，其余记 0，
    在共同字段上取平均。没有共同字段返回 None。
    """
    common = [key for key in sample if key in data]
    if not common:
        return None

    score = 0.0
    for key in common:
        a, b = sample[key], data[key]
        if a == b:
            score += 1.0
        elif _is_number(a) and _is_number(b):
            largest = max(abs(a), abs(b))
            if largest > 0:
                score += 1.0 - abs(a - b) / largest
    return score / len(common)


def matches_pattern(data: Mapping[str, Any], pattern: Mapping[str, Any]) -> bool:
    """每个 pattern 键都必须存在，并且相等或满足谓词函数"""
    for key, expected in pattern.items():
        if key not in data:
            return False
        if callable(expected):
            if not expected(data[key]):
                return False
        elif data[key] != expected:
            return False
    return True


class EventStore:
    """
    事件记忆 - 交易周期、成交、信号、市场事件

    使用示例:
        store = EventStore(FileBackend("data/memory"))
        store.initialize()

        store.record_cycle(cycle_payload)
        history = store.query(kind=RecordKind.CYCLE, tags=["PEPE"], limit=50)
        store.save()

    单线程（事件循环）内使用，没有加锁。
    """

    def __init__(
        self,
        backend: StorageBackend,
        snapshot_path: Union[str, Path] = "memory.json",
        snapshot_every: int = 100,
        default_limit: int = 100,
        clock: Clock = system_clock,
        log=None,
    ):
        """
        Args:
            backend: 快照存储后端
            snapshot_path: 快照文件路径（相对 backend 的 base_path）
            snapshot_every: 每写入 N 条自动快照一次
            default_limit: 查询默认返回数量
            clock: 时间源
            log: 绑定了组件上下文的 logger
        """
        self.backend = backend
        self.snapshot_path = Path(snapshot_path)
        self.snapshot_every = max(1, int(snapshot_every))
        self.default_limit = default_limit
        self.clock = clock
        self.log = log or logger.bind(component="memory")

        self._records: Dict[str, MemoryRecord] = {}
        self._tag_index: Dict[str, Set[str]] = {}
        self._insertions = 0
        self._initialized = False

    # ==================== 生命周期 ====================

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self):
        """从快照恢复并建立索引（只在启动时调用一次）"""
        self.restore()
        self._initialized = True
        self.log.info("[MEM_LOAD] Event store initialized", records=len(self._records))

    def __len__(self) -> int:
        return len(self._records)

    # ==================== 写入 ====================

    def append(
        self,
        kind: Union[RecordKind, str],
        payload: Union[BaseModel, Dict[str, Any]],
        tags: Optional[Iterable[str]] = None,
        importance: float = 0.5,
    ) -> str:
        """
        追加一条记录

        Args:
            kind: 记录类型，未知类型抛 ValueError
            payload: 与类型对应的载荷
            tags: 检索标签（空值会被忽略）
            importance: 重要性，截断到 [0, 1]

        Returns:
            记录ID
        """
        kind = coerce_kind(kind)
        now = self.clock()
        record = MemoryRecord(
            kind=kind,
            payload=build_payload(kind, payload),
            id=self._new_id(),
            created_at=now,
            tags=self._clean_tags(tags),
            importance=min(1.0, max(0.0, float(importance))),
            access_count=0,
            last_accessed_at=now,
        )

        self._records[record.id] = record
        self._index_record(record)
        self._insertions += 1

        self.log.debug("[MEM_OP] Appended record", record_id=record.id, kind=kind.value)

        if self._insertions % self.snapshot_every == 0:
            self.save()

        return record.id

    def record_cycle(self, payload: Union[CyclePayload, Dict[str, Any]]) -> str:
        """记录一个交易周期（标签包含本周期所有品种）"""
        payload = build_payload(RecordKind.CYCLE, payload)
        symbols = [sample.symbol for sample in payload.samples]
        return self.append(
            RecordKind.CYCLE,
            payload,
            tags=["trading_cycle", "market_analysis", *symbols],
            importance=0.7,
        )

    def record_trade(self, execution: Union[TradeExecution, Dict[str, Any]]) -> str:
        """记录一笔成交结果"""
        execution = build_payload(RecordKind.TRADE, execution)
        return self.append(
            RecordKind.TRADE,
            execution,
            tags=["trade_execution", execution.symbol, execution.action],
            importance=0.9,
        )

    def record_signal(self, signal: Union[TradingSignal, Dict[str, Any]]) -> str:
        """记录一个交易信号"""
        signal = build_payload(RecordKind.SIGNAL, signal)
        return self.append(
            RecordKind.SIGNAL,
            signal,
            tags=["trading_signal", signal.symbol, signal.strategy],
            importance=0.8,
        )

    def record_market_event(self, event: Union[MarketEventPayload, Dict[str, Any]]) -> str:
        """记录一个市场事件"""
        event = build_payload(RecordKind.MARKET_EVENT, event)
        return self.append(
            RecordKind.MARKET_EVENT,
            event,
            tags=["market_event", event.event_type, event.symbol],
            importance=0.6,
        )

    # ==================== 检索 ====================

    def get(self, record_id: str) -> Optional[MemoryRecord]:
        """按ID取记录（不计入访问次数）"""
        return self._records.get(record_id)

    def query(self, query: Optional[RecallQuery] = None, **filters) -> List[MemoryRecord]:
        """
        多条件检索

        Args:
            query: 检索条件；也可以直接传 kind / tags / time_range / min_importance / limit

        Returns:
            按相关性排序的记录列表，每条返回记录的访问次数 +1
        """
        ensure_initialized(self._initialized, "EventStore")
        if query is None:
            filters.setdefault("limit", self.default_limit)
            query = RecallQuery(**filters)

        candidates: Set[str] = set(self._records)

        if query.kind is not None and candidates:
            kind = coerce_kind(query.kind)
            candidates = {rid for rid in candidates if self._records[rid].kind == kind}

        if query.tags and candidates:
            tagged: Set[str] = set()
            for t in query.tags:
                tagged |= self._tag_index.get(t, set())
            candidates &= tagged

        if query.time_range is not None and candidates:
            candidates = {
                rid for rid in candidates
                if query.time_range.contains(self._records[rid].created_at)
            }

        if query.min_importance is not None and candidates:
            candidates = {
                rid for rid in candidates
                if self._records[rid].importance >= query.min_importance
            }

        records = sorted(
            (self._records[rid] for rid in candidates),
            key=cmp_to_key(_compare_relevance),
        )
        limit = query.limit if query.limit is not None else self.default_limit
        result = records[:limit]

        now = self.clock()
        for record in result:
            record.access_count += 1
            record.last_accessed_at = now

        return result

    def find_similar(
        self,
        sample: Union[BaseModel, Mapping[str, Any]],
        kind: Union[RecordKind, str],
        limit: int = 10,
    ) -> List[MemoryRecord]:
        """
        相似记录检索

        Args:
            sample: 参考数据（模型或字典）
            kind: 记录类型
            limit: 返回数量

        Returns:
            按相似度降序的记录；与 sample 没有共同字段的记录不返回
        """
        if isinstance(sample, BaseModel):
            sample = sample.model_dump()

        scored = []
        for record in self.query(RecallQuery(kind=coerce_kind(kind), limit=100)):
            score = field_similarity(sample, record.payload_fields())
            if score is not None:
                scored.append((score, record))

        scored.sort(key=lambda x: x[0], reverse=True)
        return [record for _, record in scored[:limit]]

    def find_matching_pattern(
        self,
        pattern: Mapping[str, Union[Any, Callable[[Any], bool]]],
        time_range: Optional[TimeRange] = None,
    ) -> List[MemoryRecord]:
        """
        结构化模式匹配

        Args:
            pattern: 载荷字段 -> 期望值或谓词函数
            time_range: 时间范围（可选）
        """
        records = self.query(RecallQuery(time_range=time_range, limit=1000))
        return [r for r in records if matches_pattern(r.payload_fields(), pattern)]

    # ==================== 统计与清理 ====================

    def stats(self) -> Dict[str, Any]:
        """获取记忆统计信息"""
        counts_by_kind: Dict[str, int] = {}
        counts_by_tag: Dict[str, int] = {}
        last_updated: Optional[datetime] = None

        for record in self._records.values():
            counts_by_kind[record.kind.value] = counts_by_kind.get(record.kind.value, 0) + 1
            for t in record.tags:
                counts_by_tag[t] = counts_by_tag.get(t, 0) + 1
            if last_updated is None or record.created_at > last_updated:
                last_updated = record.created_at

        return {
            "total_records": len(self._records),
            "counts_by_kind": counts_by_kind,
            "counts_by_tag": counts_by_tag,
            "last_updated_at": last_updated,
        }

    def cleanup(self, retention_days: int = 30) -> int:
        """
        保留期清理：删除早于 now - retention_days 且重要性 < 0.5 的记录

        Returns:
            删除的记录数
        """
        cutoff = self.clock() - timedelta(days=retention_days)
        to_delete = [
            rid for rid, record in self._records.items()
            if record.created_at < cutoff and record.importance < CLEANUP_IMPORTANCE_FLOOR
        ]

        for rid in to_delete:
            del self._records[rid]

        if to_delete:
            self._rebuild_index()

        self.log.info("[MEM_CLEAR] Cleaned up old records", removed=len(to_delete), cutoff=cutoff.isoformat())
        return len(to_delete)

    # ==================== 快照 ====================

    def save(self) -> bool:
        """
        整份快照落盘（尽力而为，失败只记录日志）

        Returns:
            是否写入成功
        """
        data = {
            "version": SNAPSHOT_VERSION,
            "saved_at": self.clock().isoformat(),
            "records": [record.to_dict() for record in self._records.values()],
        }
        try:
            self.backend.write_json(self.snapshot_path, data)
        except Exception as e:
            self.log.error("[MEM_SAVE] Failed to write snapshot", path=str(self.snapshot_path), error=str(e))
            return False

        self.log.debug("[MEM_SAVE] Snapshot written", records=len(data["records"]))
        return True

    def restore(self) -> int:
        """
        从快照恢复，完全替换内存状态

        读取失败时以空库继续；单条记录损坏时跳过该条。

        Returns:
            恢复的记录数
        """
        self._records = {}
        self._tag_index = {}

        try:
            data = self.backend.read_json(self.snapshot_path)
        except Exception as e:
            self.log.warning("[MEM_LOAD] Failed to read snapshot, starting empty", error=str(e))
            return 0

        if data is None:
            return 0

        items = data.get("records", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            self.log.warning("[MEM_LOAD] Snapshot has unexpected shape, starting empty")
            return 0

        skipped = 0
        for item in items:
            try:
                record = MemoryRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                skipped += 1
                self.log.warning("[MEM_LOAD] Skipping malformed record", error=str(e))
                continue
            self._records[record.id] = record

        self._rebuild_index()
        self.log.info("[MEM_LOAD] Restored records from snapshot", records=len(self._records), skipped=skipped)
        return len(self._records)

    # ==================== 内部方法 ====================

    def _new_id(self) -> str:
        while True:
            record_id = f"rec_{uuid4().hex[:12]}"
            if record_id not in self._records:
                return record_id

    @staticmethod
    def _clean_tags(tags: Optional[Iterable[str]]) -> List[str]:
        cleaned: List[str] = []
        for t in tags or []:
            if t and t not in cleaned:
                cleaned.append(str(t))
        return cleaned

    def _index_record(self, record: MemoryRecord):
        for t in record.tags:
            self._tag_index.setdefault(t, set()).add(record.id)

    def _rebuild_index(self):
        self._tag_index.clear()
        for record in self._records.values():
            self._index_record(record)


__all__ = ["EventStore", "field_similarity", "matches_pattern"]
