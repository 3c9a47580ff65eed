"""
存储后端抽象基类

EventStore 的持久化出口（persistence sink），只需要整份快照的读写：
- JSON 文件读写
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional


class StorageBackend(ABC):
    """
    存储后端抽象基类
    
    所有存储后端实现必须继承此类并实现所有抽象方法。
    读写失败以异常形式抛出，由调用方决定如何降级。
    """
    
    @abstractmethod
    def read_json(self, path: Path) -> Optional[Any]:
        """
        读取 JSON 文件
        
        Args:
            path: 文件路径
            
        Returns:
            解析后的数据，文件不存在返回 None
            
        Raises:
            OSError / ValueError: 读取或解析失败
        """
        pass
    
    @abstractmethod
    def write_json(self, path: Path, data: Any):
        """
        写入 JSON 文件（整份覆盖）
        
        Args:
            path: 文件路径
            data: 要写入的数据
        """
        pass


__all__ = ["StorageBackend"]
