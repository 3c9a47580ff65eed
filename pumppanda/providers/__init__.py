from .base import MarketDataProvider, ExecutionProvider
from .mock_market import MockMarketDataProvider, BASE_PRICES
from .paper_portfolio import PaperPortfolio

__all__ = [
    "MarketDataProvider",
    "ExecutionProvider",
    "MockMarketDataProvider",
    "BASE_PRICES",
    "PaperPortfolio",
]
