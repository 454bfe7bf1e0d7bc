from __future__ import annotations

from typing import List, Optional, Protocol

from models.company_record import CompanyRecord
from models.person_record import PersonRecord


class CompanyCachePort(Protocol):
    def get(self, org_number: str) -> Optional[CompanyRecord]:
        ...

    def get_people(self, org_number: str) -> List[PersonRecord]:
        ...

    def put(self, company: CompanyRecord) -> None:
        ...

    def put_people(self, org_number: str, people: List[PersonRecord]) -> None:
        """Replace the full people set of a company."""
        ...

    def age_days(self, org_number: str) -> Optional[float]:
        ...
