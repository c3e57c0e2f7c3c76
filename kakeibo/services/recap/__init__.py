from .service import (
    MonthlyOverview,
    RecapService,
    classify_trend,
)

__all__ = [
    "MonthlyOverview",
    "RecapService",
    "classify_trend",
]
