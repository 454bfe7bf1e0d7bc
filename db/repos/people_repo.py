from __future__ import annotations

import sqlite3
from typing import List, Optional

from db.repos.companies_repo import from_db_timestamp, to_db_timestamp
from models.person_record import PersonAddress, PersonRecord


def _row_to_person(row: sqlite3.Row) -> PersonRecord:
    return PersonRecord(
        id=row["id"],
        org_number=row["org_number"],
        name=row["name"],
        role=row["role"],
        personal_number=row["personal_number"],
        age=row["age"],
        phone=row["phone"],
        address=PersonAddress(
            street=row["street"],
            apartment=row["apartment"],
            postal_code=row["postal_code"],
            city=row["city"],
        ),
        profile_url=row["profile_url"],
        scraped_at=from_db_timestamp(row["scraped_at"]),
    )


class PeopleRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_for_company(self, org_number: str) -> List[PersonRecord]:
        cur = self.conn.cursor()
        cur.row_factory = sqlite3.Row
        cur.execute("SELECT * FROM people WHERE org_number = ? ORDER BY id", (org_number,))
        return [_row_to_person(r) for r in cur.fetchall()]

    def replace_for_company(self, org_number: str, people: List[PersonRecord]) -> int:
        """Delete every person of the company, then insert ``people`` (one transaction)."""
        sql = (
            "INSERT INTO people (org_number, name, role, personal_number, age, phone, "
            "street, apartment, postal_code, city, profile_url, scraped_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
        )
        with self.conn:
            self.conn.execute("DELETE FROM people WHERE org_number = ?", (org_number,))
            self.conn.executemany(
                sql,
                [
                    (
                        org_number,
                        p.name,
                        p.role,
                        p.personal_number,
                        p.age,
                        p.phone,
                        p.address.street,
                        p.address.apartment,
                        p.address.postal_code,
                        p.address.city,
                        p.profile_url,
                        to_db_timestamp(p.scraped_at),
                    )
                    for p in people
                ],
            )
        return len(people)

    def search(self, name: str, role: Optional[str] = None, limit: int = 20) -> List[PersonRecord]:
        sql = "SELECT * FROM people WHERE name LIKE ?"
        params: list = [f"%{name.strip()}%"]
        if role:
            sql += " AND role = ?"
            params.append(role)
        sql += " ORDER BY name LIMIT ?"
        params.append(limit)
        cur = self.conn.cursor()
        cur.row_factory = sqlite3.Row
        cur.execute(sql, tuple(params))
        return [_row_to_person(r) for r in cur.fetchall()]
