from .performance import PerformanceTracker, compute_metrics

__all__ = ["PerformanceTracker", "compute_metrics"]
