from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from models.company_record import CompanyRecord
from ports.repos import CompanyCachePort


SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class Serve:
    company: CompanyRecord
    age_days: float


@dataclass(frozen=True)
class Fetch:
    reason: str  # missing | forced | stale
    age_days: Optional[float] = None


FreshnessDecision = Union[Serve, Fetch]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def record_age_days(company: CompanyRecord, now: datetime) -> float:
    scraped_at = company.scraped_at
    if scraped_at.tzinfo is None:
        scraped_at = scraped_at.replace(tzinfo=timezone.utc)
    return max(0.0, (now - scraped_at).total_seconds() / SECONDS_PER_DAY)


class FreshnessPolicy:
    """Decide between serving a cached company and fetching it live.

    The decision only reads the cache; persisting fetched records is the
    caller's job.
    """

    def __init__(
        self,
        cache: CompanyCachePort,
        stale_days: float = 7,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.cache = cache
        self.stale_days = stale_days
        self._clock = clock

    def decide(self, org_number: str, force_refresh: bool = False) -> FreshnessDecision:
        company = self.cache.get(org_number)
        if company is None:
            return Fetch("missing")
        age = record_age_days(company, self._clock())
        if force_refresh:
            return Fetch("forced", age)
        if age > self.stale_days:
            return Fetch("stale", age)
        return Serve(company, age)

    def now(self) -> datetime:
        return self._clock()
