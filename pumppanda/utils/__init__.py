"""
PumpPanda Utilities Module

Provides IO helpers and logging configuration.
"""

# IO tools
from .io import (
    ensure_dir,
    canonical_json,
    atomic_write_bytes,
    atomic_write_text,
)

# Logging tools
from .logging_setup import setup_logging, InterceptHandler

__all__ = [
    # IO operations
    "ensure_dir",
    "canonical_json",
    "atomic_write_bytes",
    "atomic_write_text",

    # Logging
    "setup_logging",
    "InterceptHandler",
]
