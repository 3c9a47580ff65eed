from __future__ import annotations

import json
import os
import tempfile
from datetime import date, datetime
from typing import Any


def ensure_dir(path: str) -> None:
    if path:
        os.makedirs(path, exist_ok=True)


def canonical_json(obj: Any, indent: int | None = None) -> str:
    def default(o: Any):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return str(o)
    if indent is None:
        return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=default)
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, indent=indent, default=default)


def atomic_write_bytes(path: str, data: bytes) -> None:
    dir_name = os.path.dirname(path) or "."
    ensure_dir(dir_name)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=dir_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        try:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        except OSError:
            pass


def atomic_write_text(path: str, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))
