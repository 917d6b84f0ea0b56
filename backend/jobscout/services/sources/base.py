import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from jobscout.schemas import Job, SearchCriteria


class RateLimitCooldown:
    """
    Tracks the most recent rate-limit response from an upstream API.

    While cooling down, sources skip upstream calls entirely and the
    aggregator skips optional widening steps.
    """

    def __init__(self, seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._last_hit: Optional[float] = None

    def trigger(self) -> None:
        self._last_hit = self._clock()

    def is_cooling_down(self) -> bool:
        if self._last_hit is None:
            return False
        return self._clock() - self._last_hit < self.seconds


class BaseJobSource(ABC):
    """Base class for external job sources"""

    source: str = "unknown"

    def __init__(self, cooldown: Optional[RateLimitCooldown] = None):
        self.cooldown = cooldown or RateLimitCooldown()

    def is_cooling_down(self) -> bool:
        return self.cooldown.is_cooling_down()

    @abstractmethod
    async def search(self, criteria: SearchCriteria, page: int = 1) -> List[Job]:
        """Fetch one page of jobs. Must return [] instead of raising on upstream errors."""
        pass
