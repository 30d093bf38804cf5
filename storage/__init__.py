"""Storage package persisting the bot's last observed price."""

from .json_repository import PriceHistoryRepository
from .models import PriceHistory

__all__ = ["PriceHistory", "PriceHistoryRepository"]
