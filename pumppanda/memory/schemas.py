"""
记忆系统数据结构定义

包含：
- RecordKind: 记录类型（cycle / trade / signal / market_event）
- CyclePayload / MarketEventPayload: 各类型的载荷结构
- MemoryRecord: 事件记录（EventStore 使用）
- RecallQuery / TimeRange: 检索条件

载荷与类型一一对应：
- cycle        -> CyclePayload
- trade        -> TradeExecution
- signal       -> TradingSignal
- market_event -> MarketEventPayload
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from ..core.schemas import (
    MarketSample,
    MarketAnalysis,
    RiskAssessment,
    PortfolioSnapshot,
    TradeExecution,
    TradingSignal,
)


class RecordKind(str, Enum):
    """记录类型"""
    CYCLE = "cycle"
    TRADE = "trade"
    SIGNAL = "signal"
    MARKET_EVENT = "market_event"


class CyclePayload(BaseModel):
    """一个交易周期的完整快照"""
    model_config = ConfigDict(extra="forbid")

    timestamp: datetime
    samples: List[MarketSample] = Field(default_factory=list)
    analyses: List[MarketAnalysis] = Field(default_factory=list)
    assessment: Optional[RiskAssessment] = None
    portfolio: Optional[PortfolioSnapshot] = None

    def sample_for(self, symbol: str) -> Optional[MarketSample]:
        """取该周期内某个品种的行情样本"""
        for sample in self.samples:
            if sample.symbol == symbol:
                return sample
        return None


class MarketEventPayload(BaseModel):
    """市场事件（例如扫描到的热门代币）"""
    model_config = ConfigDict(extra="forbid")

    event_type: str
    symbol: Optional[str] = None
    chain: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


PAYLOAD_MODELS: Dict[RecordKind, Type[BaseModel]] = {
    RecordKind.CYCLE: CyclePayload,
    RecordKind.TRADE: TradeExecution,
    RecordKind.SIGNAL: TradingSignal,
    RecordKind.MARKET_EVENT: MarketEventPayload,
}


def coerce_kind(kind: Any) -> RecordKind:
    """
    规范化记录类型，未知类型直接拒绝

    Raises:
        ValueError: 未知的记录类型
    """
    if isinstance(kind, RecordKind):
        return kind
    try:
        return RecordKind(kind)
    except ValueError:
        raise ValueError(f"Unknown record kind: {kind!r}") from None


def build_payload(kind: RecordKind, payload: Any) -> BaseModel:
    """
    按记录类型校验并构造载荷

    Args:
        kind: 记录类型
        payload: 对应模型实例或字典

    Raises:
        ValueError: 载荷结构与类型不符（pydantic ValidationError 也是 ValueError）
    """
    model = PAYLOAD_MODELS[kind]
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    if not isinstance(payload, dict):
        raise ValueError(f"Payload for {kind.value} must be a {model.__name__} or dict")
    return model.model_validate(payload)


@dataclass
class TimeRange:
    """闭区间时间范围"""
    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


@dataclass
class RecallQuery:
    """
    检索条件（各条件之间为 AND）

    Attributes:
        kind: 记录类型
        tags: 标签（任一匹配）
        time_range: 创建时间范围（闭区间）
        min_importance: 最低重要性
        limit: 返回数量上限
    """
    kind: Optional[RecordKind] = None
    tags: Optional[List[str]] = None
    time_range: Optional[TimeRange] = None
    min_importance: Optional[float] = None
    limit: int = 100


@dataclass
class MemoryRecord:
    """
    事件记录

    除 access_count / last_accessed_at 外，写入后不再修改。

    Attributes:
        kind: 记录类型
        payload: 与类型对应的载荷模型
        id: 唯一标识（写入时生成，不复用）
        created_at: 创建时间
        tags: 检索标签
        importance: 重要性 0.0-1.0，检索排序主键
        access_count: 被检索返回的次数
        last_accessed_at: 最近一次被检索返回的时间
    """
    kind: RecordKind
    payload: BaseModel
    id: str
    created_at: datetime
    tags: List[str] = field(default_factory=list)
    importance: float = 0.5
    access_count: int = 0
    last_accessed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.last_accessed_at is None:
            self.last_accessed_at = self.created_at

    def payload_fields(self) -> Dict[str, Any]:
        """载荷字段字典（用于相似度和模式匹配）"""
        return self.payload.model_dump()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "kind": self.kind.value,
            "payload": self.payload.model_dump(mode="json"),
            "tags": list(self.tags),
            "importance": self.importance,
            "access_count": self.access_count,
            "last_accessed_at": self.last_accessed_at.isoformat() if self.last_accessed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemoryRecord':
        kind = coerce_kind(data.get("kind"))
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        if not isinstance(created_at, datetime):
            raise ValueError(f"Record {data.get('id')} has no created_at")
        last_accessed_at = data.get("last_accessed_at")
        if isinstance(last_accessed_at, str):
            last_accessed_at = datetime.fromisoformat(last_accessed_at)

        return cls(
            kind=kind,
            payload=build_payload(kind, data.get("payload") or {}),
            id=data["id"],
            created_at=created_at,
            tags=list(data.get("tags", [])),
            importance=float(data.get("importance", 0.5)),
            access_count=int(data.get("access_count", 0)),
            last_accessed_at=last_accessed_at,
        )


__all__ = [
    "RecordKind",
    "CyclePayload",
    "MarketEventPayload",
    "PAYLOAD_MODELS",
    "coerce_kind",
    "build_payload",
    "TimeRange",
    "RecallQuery",
    "MemoryRecord",
]
