from .recap import MonthlyOverview, RecapService

__all__ = [
    "MonthlyOverview",
    "RecapService",
]
