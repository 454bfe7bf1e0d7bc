from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from models.company_record import (
    CompanyRecord,
    ContactInfo,
    FinancialSnapshot,
    IndustryInfo,
    TaxInfo,
)


SORTABLE_COLUMNS = ("name", "revenue", "scraped_at")

_COLUMNS = [
    "org_number", "name", "legal_form", "status", "registration_date",
    "phone", "address", "postal_code", "city", "municipality", "county",
    "f_skatt", "vat_registered", "employer_registered",
    "financial_period", "revenue", "profit_after_financial", "net_profit", "total_assets", "currency",
    "sni_code", "sni_description", "categories_json", "activity_description",
    "bankgiro_number", "has_remarks", "remarks", "source_url", "scraped_at", "updated_at",
]


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """UTC 'YYYY-MM-DD HH:MM:SS', the format SQLite's datetime() produces."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _company_to_values(company: CompanyRecord, updated_at: str) -> tuple:
    fin = company.financials
    return (
        company.org_number,
        company.name,
        company.legal_form,
        company.status,
        company.registration_date,
        company.contact.phone,
        company.contact.address,
        company.contact.postal_code,
        company.contact.city,
        company.contact.municipality,
        company.contact.county,
        1 if company.tax_info.f_skatt else 0,
        1 if company.tax_info.vat_registered else 0,
        1 if company.tax_info.employer_registered else 0,
        fin.period if fin else None,
        fin.revenue if fin else None,
        fin.profit_after_financial if fin else None,
        fin.net_profit if fin else None,
        fin.total_assets if fin else None,
        fin.currency if fin else "SEK",
        company.industry.sni_code,
        company.industry.sni_description,
        # Preserve non-ASCII characters (e.g., å, ä, ö) in stored JSON text
        json.dumps(company.industry.categories or [], ensure_ascii=False),
        company.industry.activity_description,
        company.bankgiro_number,
        1 if company.has_remarks else 0,
        company.remarks,
        company.source_url,
        to_db_timestamp(company.scraped_at),
        updated_at,
    )


def _row_to_company(row: sqlite3.Row) -> CompanyRecord:
    has_financials = any(
        row[k] is not None
        for k in ("financial_period", "revenue", "profit_after_financial", "net_profit", "total_assets")
    )
    try:
        categories = json.loads(row["categories_json"] or "[]")
    except ValueError:
        categories = []
    return CompanyRecord(
        org_number=row["org_number"],
        name=row["name"],
        legal_form=row["legal_form"],
        status=row["status"],
        registration_date=row["registration_date"],
        contact=ContactInfo(
            phone=row["phone"],
            address=row["address"],
            postal_code=row["postal_code"],
            city=row["city"],
            municipality=row["municipality"],
            county=row["county"],
        ),
        tax_info=TaxInfo(
            f_skatt=bool(row["f_skatt"]),
            vat_registered=bool(row["vat_registered"]),
            employer_registered=bool(row["employer_registered"]),
        ),
        financials=FinancialSnapshot(
            period=row["financial_period"],
            revenue=row["revenue"],
            profit_after_financial=row["profit_after_financial"],
            net_profit=row["net_profit"],
            total_assets=row["total_assets"],
            currency=row["currency"] or "SEK",
        ) if has_financials else None,
        industry=IndustryInfo(
            sni_code=row["sni_code"],
            sni_description=row["sni_description"],
            categories=categories if isinstance(categories, list) else [],
            activity_description=row["activity_description"],
        ),
        bankgiro_number=row["bankgiro_number"],
        has_remarks=bool(row["has_remarks"]),
        remarks=row["remarks"],
        source_url=row["source_url"],
        scraped_at=from_db_timestamp(row["scraped_at"]),
        updated_at=from_db_timestamp(row["updated_at"]),
    )


class CompaniesRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        cur = self.conn.cursor()
        cur.row_factory = sqlite3.Row
        cur.execute(sql, params)
        return cur.fetchall()

    def get(self, org_number: str) -> Optional[CompanyRecord]:
        rows = self._query("SELECT * FROM companies WHERE org_number = ?", (org_number,))
        return _row_to_company(rows[0]) if rows else None

    def upsert(self, company: CompanyRecord, commit: bool = True) -> None:
        """Insert or fully overwrite a company row keyed by org_number."""
        placeholders = ", ".join("?" for _ in _COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS if c != "org_number")
        sql = (
            f"INSERT INTO companies ({', '.join(_COLUMNS)}) VALUES ({placeholders}) "
            f"ON CONFLICT(org_number) DO UPDATE SET {updates};"
        )
        updated_at = to_db_timestamp(datetime.now(timezone.utc))
        self.conn.execute(sql, _company_to_values(company, updated_at))
        if commit:
            self.conn.commit()

    def age_days(self, org_number: str) -> Optional[float]:
        """Days since the row was fetched, computed by SQLite against its own clock."""
        cur = self.conn.cursor()
        cur.execute(
            "SELECT julianday('now') - julianday(scraped_at) FROM companies WHERE org_number = ?",
            (org_number,),
        )
        row = cur.fetchone()
        if not row or row[0] is None:
            return None
        return float(row[0])

    def is_stale(self, org_number: str, stale_days: float) -> bool:
        age = self.age_days(org_number)
        return age is None or age > stale_days

    def search_by_name(self, query: str, limit: int = 20) -> List[CompanyRecord]:
        """Case-insensitive substring match on name, SNI description, activity and categories."""
        like = f"%{query.strip()}%"
        rows = self._query(
            (
                "SELECT * FROM companies "
                "WHERE name LIKE ? OR sni_description LIKE ? OR activity_description LIKE ? OR categories_json LIKE ? "
                "ORDER BY CASE WHEN name LIKE ? THEN 0 ELSE 1 END, name LIMIT ?;"
            ),
            (like, like, like, like, like, limit),
        )
        return [_row_to_company(r) for r in rows]

    def search_by_industry(
        self,
        sni_code: Optional[str] = None,
        category: Optional[str] = None,
        city: Optional[str] = None,
        min_revenue: Optional[int] = None,
        limit: int = 20,
    ) -> List[CompanyRecord]:
        where: List[str] = []
        params: List[Any] = []
        if sni_code:
            where.append("sni_code = ?")
            params.append(sni_code)
        if category:
            where.append("categories_json LIKE ?")
            params.append(f"%{category}%")
        if city:
            where.append("city = ?")
            params.append(city)
        if min_revenue is not None:
            where.append("revenue >= ?")
            params.append(min_revenue)
        where_sql = (" WHERE " + " AND ".join(where)) if where else ""
        rows = self._query(
            f"SELECT * FROM companies{where_sql} ORDER BY revenue DESC NULLS LAST LIMIT ?;",
            (*params, limit),
        )
        return [_row_to_company(r) for r in rows]

    def list_cached(
        self,
        city: Optional[str] = None,
        status: Optional[str] = None,
        has_remarks: Optional[bool] = None,
        sort_by: str = "scraped_at",
        order: str = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> List[CompanyRecord]:
        if sort_by not in SORTABLE_COLUMNS:
            raise ValueError(f"sort_by must be one of {SORTABLE_COLUMNS}")
        if order.lower() not in ("asc", "desc"):
            raise ValueError("order must be 'asc' or 'desc'")
        where: List[str] = []
        params: List[Any] = []
        if city:
            where.append("city = ?")
            params.append(city)
        if status:
            where.append("status = ?")
            params.append(status)
        if has_remarks is not None:
            where.append("has_remarks = ?")
            params.append(1 if has_remarks else 0)
        where_sql = (" WHERE " + " AND ".join(where)) if where else ""
        rows = self._query(
            f"SELECT * FROM companies{where_sql} ORDER BY {sort_by} {order.upper()} LIMIT ? OFFSET ?;",
            (*params, limit, offset),
        )
        return [_row_to_company(r) for r in rows]

    def stats(self) -> Dict[str, Any]:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*), MIN(scraped_at), MAX(scraped_at) FROM companies")
        total_companies, oldest, newest = cur.fetchone()
        cur.execute("SELECT COUNT(*) FROM people")
        total_people = cur.fetchone()[0]
        cur.execute("SELECT city, COUNT(*) FROM companies WHERE city IS NOT NULL GROUP BY city")
        by_city = {city: count for city, count in cur.fetchall()}
        cur.execute("SELECT status, COUNT(*) FROM companies GROUP BY status")
        by_status = {(status or "unknown"): count for status, count in cur.fetchall()}

        size_bytes = 0
        cur.execute("PRAGMA database_list")
        for _, name, path in cur.fetchall():
            if name == "main" and path and os.path.exists(path):
                size_bytes = os.path.getsize(path)
        return {
            "total_companies": int(total_companies or 0),
            "total_people": int(total_people or 0),
            "oldest_entry": oldest,
            "newest_entry": newest,
            "cache_size_mb": round(size_bytes / 1024 / 1024, 2),
            "companies_by_city": by_city,
            "companies_by_status": by_status,
        }

    def clear_older_than(self, days: float) -> int:
        """Delete companies fetched more than ``days`` ago; people cascade."""
        cur = self.conn.cursor()
        cur.execute("DELETE FROM companies WHERE julianday('now') - julianday(scraped_at) > ?", (days,))
        deleted = cur.rowcount
        # Orphans can exist if rows were written with foreign keys disabled
        cur.execute("DELETE FROM people WHERE org_number NOT IN (SELECT org_number FROM companies)")
        self.conn.commit()
        return int(deleted)
