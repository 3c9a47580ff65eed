from .gate import RiskGate, calculate_drawdown

__all__ = ["RiskGate", "calculate_drawdown"]
