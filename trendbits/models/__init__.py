from trendbits.models.auth import User
from trendbits.models.guest import GuestRequest
from trendbits.models.trends import HotTopic, TrendHistoryItem

__all__ = [
    "GuestRequest",
    "HotTopic",
    "TrendHistoryItem",
    "User",
]
