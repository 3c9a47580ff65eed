"""
时间源

所有组件通过注入的 clock 获取当前时间，便于测试中精确控制
记录时间戳、时间窗口过滤和保留期清理。
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """默认时间源（本地时间）"""
    return datetime.now()


class ManualClock:
    """
    手动推进的时钟

    使用示例:
        clock = ManualClock(datetime(2025, 1, 1, 9, 30))
        store = EventStore(backend, clock=clock)
        clock.advance(minutes=5)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 1)

    def __call__(self) -> datetime:
        return self._now

    def advance(self, **delta) -> datetime:
        """按 timedelta 参数推进时间，返回推进后的时间"""
        self._now = self._now + timedelta(**delta)
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now


__all__ = ["Clock", "system_clock", "ManualClock"]
