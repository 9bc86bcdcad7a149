"""Portfolio and order history projections."""

from .views import PortfolioReader

__all__ = ["PortfolioReader"]
