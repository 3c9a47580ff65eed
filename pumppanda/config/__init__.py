from .config import PumpPandaConfig, DEFAULT_CONFIG_PATH

__all__ = ["PumpPandaConfig", "DEFAULT_CONFIG_PATH"]
