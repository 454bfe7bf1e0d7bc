from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from db.repos.companies_repo import CompaniesRepo
from db.repos.people_repo import PeopleRepo
from models.company_record import CompanyRecord
from models.person_record import PersonRecord

logger = logging.getLogger(__name__)


class CompanyCache:
    """SQLite-backed cache store keyed by canonical organization number."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.companies = CompaniesRepo(conn)
        self.people = PeopleRepo(conn)

    def get(self, org_number: str) -> Optional[CompanyRecord]:
        company = self.companies.get(org_number)
        logger.debug("Cache read", extra={"org_number": org_number, "step": "cache_read", "cached": company is not None})
        return company

    def get_people(self, org_number: str) -> List[PersonRecord]:
        return self.people.get_for_company(org_number)

    def put(self, company: CompanyRecord) -> None:
        self.companies.upsert(company)
        logger.debug("Cache write", extra={"org_number": company.org_number, "step": "cache_write"})

    def put_people(self, org_number: str, people: List[PersonRecord]) -> None:
        count = self.people.replace_for_company(org_number, people)
        logger.debug(f"Replaced people set ({count})", extra={"org_number": org_number, "step": "cache_write"})

    def age_days(self, org_number: str) -> Optional[float]:
        return self.companies.age_days(org_number)
