"""
Daily briefing sub-bot: weather, prices and news on a schedule or on demand.
"""

from .service import BriefingService
from .scheduler import BriefingScheduler, SCHEDULED_TIMES
from .prices import PriceService
from .news import NewsService

__all__ = [
    "BriefingService",
    "BriefingScheduler",
    "SCHEDULED_TIMES",
    "PriceService",
    "NewsService",
]
