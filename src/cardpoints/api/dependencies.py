from functools import lru_cache

from cardpoints.config import settings
from cardpoints.service import RewardsService


@lru_cache(maxsize=1)
def get_service() -> RewardsService:
    return RewardsService.from_settings(settings)
