from __future__ import annotations

import sqlite3


def bootstrap(conn: sqlite3.Connection) -> None:
    """Create cache tables and indexes (idempotent)."""
    cur = conn.cursor()

    # Companies cache, one row per organization number
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS companies (\n"
            "  org_number TEXT PRIMARY KEY,\n"
            "  name TEXT NOT NULL,\n"
            "  legal_form TEXT,\n"
            "  status TEXT,\n"
            "  registration_date TEXT,\n"
            "  phone TEXT,\n"
            "  address TEXT,\n"
            "  postal_code TEXT,\n"
            "  city TEXT,\n"
            "  municipality TEXT,\n"
            "  county TEXT,\n"
            "  f_skatt INTEGER NOT NULL DEFAULT 0,\n"
            "  vat_registered INTEGER NOT NULL DEFAULT 0,\n"
            "  employer_registered INTEGER NOT NULL DEFAULT 0,\n"
            "  financial_period TEXT,\n"
            "  revenue INTEGER,\n"
            "  profit_after_financial INTEGER,\n"
            "  net_profit INTEGER,\n"
            "  total_assets INTEGER,\n"
            "  currency TEXT DEFAULT 'SEK',\n"
            "  sni_code TEXT,\n"
            "  sni_description TEXT,\n"
            "  categories_json TEXT,\n"
            "  activity_description TEXT,\n"
            "  bankgiro_number TEXT,\n"
            "  has_remarks INTEGER NOT NULL DEFAULT 0,\n"
            "  remarks TEXT,\n"
            "  source_url TEXT,\n"
            "  scraped_at TEXT NOT NULL DEFAULT (datetime('now')),\n"
            "  updated_at TEXT NOT NULL DEFAULT (datetime('now'))\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_companies_name ON companies(name);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_companies_sni ON companies(sni_code);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_companies_city ON companies(city);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_companies_scraped_at ON companies(scraped_at);")

    # Board members / key people, replaced as a set on every fetch
    cur.execute(
        (
            "CREATE TABLE IF NOT EXISTS people (\n"
            "  id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "  org_number TEXT NOT NULL,\n"
            "  name TEXT NOT NULL,\n"
            "  role TEXT NOT NULL,\n"
            "  personal_number TEXT,\n"
            "  age INTEGER,\n"
            "  phone TEXT,\n"
            "  street TEXT,\n"
            "  apartment TEXT,\n"
            "  postal_code TEXT,\n"
            "  city TEXT,\n"
            "  profile_url TEXT,\n"
            "  scraped_at TEXT NOT NULL DEFAULT (datetime('now')),\n"
            "  FOREIGN KEY(org_number) REFERENCES companies(org_number) ON DELETE CASCADE\n"
            ")"
        )
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_people_org_number ON people(org_number);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_people_name ON people(name);")

    conn.commit()
