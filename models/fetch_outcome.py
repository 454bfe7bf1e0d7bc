from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from models.company_record import CompanyRecord
from models.person_record import PersonRecord


class FetchStatus(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FLAGGED = "flagged"
    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSIENT_ERROR = "transient_error"


@dataclass(frozen=True)
class FetchOutcome:
    """Tagged result of one live fetch.

    Only SUCCESS carries a company (and people when a board scan ran);
    every other status carries a human-readable ``reason``.
    """

    status: FetchStatus
    company: Optional[CompanyRecord] = None
    people: list[PersonRecord] = field(default_factory=list)
    people_scanned: bool = False
    reason: Optional[str] = None
    retryable: bool = False
    attempts: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.SUCCESS

    @classmethod
    def success(
        cls,
        company: CompanyRecord,
        people: list[PersonRecord],
        *,
        people_scanned: bool,
        attempts: int,
        warnings: Optional[list[str]] = None,
    ) -> "FetchOutcome":
        return cls(
            status=FetchStatus.SUCCESS,
            company=company,
            people=list(people),
            people_scanned=people_scanned,
            attempts=attempts,
            warnings=list(warnings or []),
        )

    @classmethod
    def not_found(cls, org_number: str, *, attempts: int = 1) -> "FetchOutcome":
        return cls(status=FetchStatus.NOT_FOUND, reason=f"Company {org_number} not found", attempts=attempts)

    @classmethod
    def flagged(cls, reason: str, *, attempts: int = 1) -> "FetchOutcome":
        return cls(status=FetchStatus.FLAGGED, reason=reason, attempts=attempts)

    @classmethod
    def quota_exceeded(cls, reason: str, *, attempts: int = 1) -> "FetchOutcome":
        return cls(status=FetchStatus.QUOTA_EXCEEDED, reason=reason, retryable=True, attempts=attempts)

    @classmethod
    def transient_error(cls, reason: str, *, retryable: bool, attempts: int) -> "FetchOutcome":
        return cls(status=FetchStatus.TRANSIENT_ERROR, reason=reason, retryable=retryable, attempts=attempts)
