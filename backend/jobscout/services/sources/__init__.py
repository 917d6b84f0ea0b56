from jobscout.services.sources.base import BaseJobSource, RateLimitCooldown
from jobscout.services.sources.jsearch import JSearchSource

__all__ = ["BaseJobSource", "JSearchSource", "RateLimitCooldown"]
