from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from models.company_record import CompanyRecord
from models.fetch_outcome import FetchOutcome
from models.person_record import PersonRecord
from ports.repos import CompanyCachePort
from services.freshness import FreshnessPolicy, Serve, record_age_days
from services.org_number import InvalidOrgNumberError, normalize_org_number

logger = logging.getLogger(__name__)


class CompanyFetcher(Protocol):
    async def fetch_company(self, org_number: str, include_people: bool = True) -> FetchOutcome:
        ...


@dataclass
class LookupResult:
    """Caller-facing result: always carries ``success`` and, on failure, ``error``."""

    success: bool
    org_number: Optional[str] = None
    cached: bool = False
    company: Optional[CompanyRecord] = None
    board_members: Optional[List[PersonRecord]] = None
    cache_age_days: Optional[int] = None
    is_stale: Optional[bool] = None
    status: Optional[str] = None
    error: Optional[str] = None
    retryable: bool = False
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "org_number": self.org_number}
        if self.success:
            out["cached"] = self.cached
            if self.company is not None:
                out["company"] = self.company.model_dump(mode="json")
            if self.board_members is not None:
                out["board_members"] = [p.model_dump(mode="json") for p in self.board_members]
            if self.cache_age_days is not None:
                out["cache_age_days"] = self.cache_age_days
            if self.is_stale is not None:
                out["is_stale"] = self.is_stale
            if self.warnings:
                out["warnings"] = list(self.warnings)
        else:
            out["status"] = self.status
            out["error"] = self.error
            out["retryable"] = self.retryable
        return out


def _invalid(value: str, error: InvalidOrgNumberError) -> LookupResult:
    return LookupResult(success=False, org_number=value, status="invalid", error=str(error))


class CompanyService:
    """Cache-first company lookups backed by live fetches."""

    def __init__(
        self,
        cache: CompanyCachePort,
        fetcher: CompanyFetcher,
        policy: FreshnessPolicy,
    ) -> None:
        self.cache = cache
        self.fetcher = fetcher
        self.policy = policy

    async def lookup_company(
        self,
        org_number: str,
        force_refresh: bool = False,
        include_board: bool = True,
    ) -> LookupResult:
        try:
            org = normalize_org_number(org_number)
        except InvalidOrgNumberError as e:
            return _invalid(org_number, e)

        decision = self.policy.decide(org, force_refresh)
        if isinstance(decision, Serve):
            logger.info("Serving cached company", extra={"org_number": org, "cached": True})
            return LookupResult(
                success=True,
                org_number=org,
                cached=True,
                company=decision.company,
                board_members=self.cache.get_people(org) if include_board else None,
                cache_age_days=int(math.floor(decision.age_days)),
            )

        logger.info(f"Fetching company live ({decision.reason})", extra={"org_number": org, "cached": False})
        outcome = await self.fetcher.fetch_company(org, include_people=include_board)
        return self._store_outcome(org, outcome, include_board)

    def _store_outcome(self, org: str, outcome: FetchOutcome, include_board: bool) -> LookupResult:
        if not outcome.ok or outcome.company is None:
            return LookupResult(
                success=False,
                org_number=org,
                status=outcome.status.value,
                error=outcome.reason,
                retryable=outcome.retryable,
            )
        self.cache.put(outcome.company)
        if outcome.people_scanned:
            self.cache.put_people(org, outcome.people)
        return LookupResult(
            success=True,
            org_number=org,
            cached=False,
            company=outcome.company,
            board_members=list(outcome.people) if include_board else None,
            warnings=list(outcome.warnings),
        )

    async def get_board_members(self, org_number: str, force_refresh: bool = False) -> LookupResult:
        try:
            org = normalize_org_number(org_number)
        except InvalidOrgNumberError as e:
            return _invalid(org_number, e)

        if not force_refresh and self.cache.get(org) is not None:
            return LookupResult(
                success=True,
                org_number=org,
                cached=True,
                board_members=self.cache.get_people(org),
            )
        outcome = await self.fetcher.fetch_company(org, include_people=True)
        result = self._store_outcome(org, outcome, include_board=True)
        result.company = None
        return result

    async def refresh_company(self, org_number: str) -> LookupResult:
        return await self.lookup_company(org_number, force_refresh=True, include_board=True)

    def get_company_details(self, org_number: str) -> LookupResult:
        try:
            org = normalize_org_number(org_number)
        except InvalidOrgNumberError as e:
            return _invalid(org_number, e)

        company = self.cache.get(org)
        if company is None:
            return LookupResult(
                success=False,
                org_number=org,
                status="not_cached",
                error=f"Company {org} not found in cache; run a lookup to fetch fresh data",
            )
        age = record_age_days(company, self.policy.now())
        return LookupResult(
            success=True,
            org_number=org,
            cached=True,
            company=company,
            cache_age_days=int(math.floor(age)),
            is_stale=age > self.policy.stale_days,
        )

    def get_financials(self, org_number: str) -> Dict[str, Any]:
        details = self.get_company_details(org_number)
        if not details.success or details.company is None:
            return details.to_dict()
        fin = details.company.financials
        return {
            "success": True,
            "org_number": details.org_number,
            "company_name": details.company.name,
            "financials": fin.model_dump(mode="json") if fin else None,
            "has_data": fin is not None,
        }

    def get_tax_information(self, org_number: str) -> Dict[str, Any]:
        details = self.get_company_details(org_number)
        if not details.success or details.company is None:
            return details.to_dict()
        return {
            "success": True,
            "org_number": details.org_number,
            "company_name": details.company.name,
            "tax_info": details.company.tax_info.model_dump(mode="json"),
        }
