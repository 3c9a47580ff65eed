"""
文件存储后端实现

使用 JSON 文件进行持久化存储，写入走临时文件 + rename，
避免进程中断时留下半份快照。
"""

from typing import Any, Optional
from pathlib import Path
import json

from .base import StorageBackend
from ...utils.io import atomic_write_text, canonical_json


class FileBackend(StorageBackend):
    """
    文件存储后端
    
    基于本地文件系统的存储实现。
    
    Args:
        base_path: 基础路径，相对路径会基于此路径解析
    """
    
    def __init__(self, base_path: Path = None):
        self.base_path = Path(base_path) if base_path else Path(".")
    
    def read_json(self, path: Path) -> Optional[Any]:
        """读取 JSON 文件"""
        full_path = self._resolve_path(path)
        if not full_path.exists():
            return None
        
        with open(full_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    
    def write_json(self, path: Path, data: Any):
        """写入 JSON 文件"""
        full_path = self._resolve_path(path)
        atomic_write_text(str(full_path), canonical_json(data, indent=2))
    
    def _resolve_path(self, path: Path) -> Path:
        """解析路径（相对路径基于 base_path）"""
        path = Path(path)
        if path.is_absolute():
            return path
        return self.base_path / path


__all__ = ["FileBackend"]
