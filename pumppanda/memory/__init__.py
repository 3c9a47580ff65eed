"""
PumpPanda 事件记忆（recall memory）

只追加的带标签事件日志：
- EventStore: 写入、检索排序、相似检索、模式匹配、清理、快照
- MemoryRecord: 事件记录，载荷按 RecordKind 区分
- FileBackend: 快照落盘

使用示例:
    from pumppanda.memory import EventStore, RecordKind
    from pumppanda.memory.backends import FileBackend

    store = EventStore(FileBackend("data/memory"))
    store.initialize()

    history = store.query(kind=RecordKind.CYCLE, tags=["PEPE"], limit=50)
"""

from .store import EventStore
from .schemas import (
    RecordKind,
    CyclePayload,
    MarketEventPayload,
    MemoryRecord,
    RecallQuery,
    TimeRange,
)
from .backends import StorageBackend, FileBackend

__all__ = [
    "EventStore",
    "RecordKind",
    "CyclePayload",
    "MarketEventPayload",
    "MemoryRecord",
    "RecallQuery",
    "TimeRange",
    "StorageBackend",
    "FileBackend",
]
