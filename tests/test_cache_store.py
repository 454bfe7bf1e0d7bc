from __future__ import annotations

from datetime import timedelta

import pytest

from db import schema
from db.cache_store import CompanyCache
from db.connection import get_connection
from models.company_record import (
    CompanyRecord,
    ContactInfo,
    FinancialSnapshot,
    IndustryInfo,
    TaxInfo,
    utc_now,
)
from models.person_record import PersonAddress, PersonRecord


ORG = "556631-3788"


def _cache(tmp_path) -> CompanyCache:
    conn = get_connection(str(tmp_path / "nested" / "cache.db"))
    schema.bootstrap(conn)
    return CompanyCache(conn)


def _company(org=ORG, name="Acme AB", city="Stockholm", revenue=12345000, **kwargs) -> CompanyRecord:
    return CompanyRecord(
        org_number=org,
        name=name,
        legal_form="Aktiebolag",
        status="Aktiv",
        contact=ContactInfo(address="Storgatan 1, 123 45 Stockholm", postal_code="12345", city=city),
        tax_info=TaxInfo(f_skatt=True, vat_registered=True),
        financials=FinancialSnapshot(period="2023-12", revenue=revenue, net_profit=-250000),
        industry=IndustryInfo(
            sni_code="62010",
            sni_description="Dataprogrammering",
            categories=["IT-konsulter", "Programvara"],
        ),
        **kwargs,
    )


def _person(name="Anna Andersson", role="VD", org=ORG) -> PersonRecord:
    return PersonRecord(
        org_number=org,
        name=name,
        role=role,
        age=52,
        address=PersonAddress(street="Storgatan 1", apartment="lgh 1201", postal_code="12345", city="Stockholm"),
    )


def test_put_then_get_returns_same_record(tmp_path):
    cache = _cache(tmp_path)
    company = _company()
    cache.put(company)

    stored = cache.get(ORG)
    assert stored is not None
    assert stored.model_dump(exclude={"updated_at"}) == company.model_dump(exclude={"updated_at"})
    assert stored.updated_at is not None
    assert cache.get("556000-0001") is None


def test_company_without_financials_round_trips_none(tmp_path):
    cache = _cache(tmp_path)
    cache.put(CompanyRecord(org_number=ORG, name="Tom AB"))
    stored = cache.get(ORG)
    assert stored.financials is None
    assert stored.industry.categories == []


def test_upsert_overwrites_whole_record(tmp_path):
    cache = _cache(tmp_path)
    cache.put(_company())
    cache.put(_company(name="Acme Group AB", revenue=None))
    stored = cache.get(ORG)
    assert stored.name == "Acme Group AB"
    assert stored.financials.revenue is None
    assert cache.companies.stats()["total_companies"] == 1


def test_people_are_replaced_as_a_set(tmp_path):
    cache = _cache(tmp_path)
    cache.put(_company())
    cache.put_people(ORG, [_person(), _person("Bo Berg", "Ordförande")])
    assert [p.name for p in cache.get_people(ORG)] == ["Anna Andersson", "Bo Berg"]

    cache.put_people(ORG, [_person("Cia Carlsson", "Styrelseledamot")])
    people = cache.get_people(ORG)
    assert [(p.name, p.role) for p in people] == [("Cia Carlsson", "Styrelseledamot")]
    assert people[0].address.apartment == "lgh 1201"

    cache.put_people(ORG, [])
    assert cache.get_people(ORG) == []


def test_age_days_uses_scraped_at(tmp_path):
    cache = _cache(tmp_path)
    cache.put(_company(scraped_at=utc_now() - timedelta(days=3)))
    assert cache.age_days(ORG) == pytest.approx(3.0, abs=0.01)
    assert cache.age_days("556000-0001") is None
    assert cache.companies.is_stale(ORG, stale_days=2) is True
    assert cache.companies.is_stale(ORG, stale_days=7) is False
    assert cache.companies.is_stale("556000-0001", stale_days=7) is True


def test_clear_older_than_cascades_to_people(tmp_path):
    cache = _cache(tmp_path)
    cache.put(_company(scraped_at=utc_now() - timedelta(days=40)))
    cache.put(_company(org="556000-0001", name="Fresh AB"))
    cache.put_people(ORG, [_person()])
    cache.put_people("556000-0001", [_person("Bo Berg", org="556000-0001")])

    assert cache.companies.clear_older_than(30) == 1
    assert cache.get(ORG) is None
    assert cache.get_people(ORG) == []
    assert [p.name for p in cache.get_people("556000-0001")] == ["Bo Berg"]


def test_search_and_listing(tmp_path):
    cache = _cache(tmp_path)
    cache.put(_company())
    cache.put(_company(org="556000-0001", name="Bygg & Betong AB", city="Malmö", revenue=900000))
    cache.put_people(ORG, [_person()])

    assert [c.name for c in cache.companies.search_by_name("acme")] == ["Acme AB"]
    assert len(cache.companies.search_by_name("dataprogrammering")) == 2
    assert [c.name for c in cache.companies.search_by_industry(city="Malmö")] == ["Bygg & Betong AB"]
    assert [c.name for c in cache.companies.search_by_industry(sni_code="62010", min_revenue=1000000)] == ["Acme AB"]
    assert [c.name for c in cache.companies.search_by_industry(category="Programvara")] == [
        "Acme AB",
        "Bygg & Betong AB",
    ]
    assert [c.name for c in cache.companies.list_cached(sort_by="name", order="asc")] == [
        "Acme AB",
        "Bygg & Betong AB",
    ]
    assert [p.name for p in cache.people.search("anna", role="VD")] == ["Anna Andersson"]
    assert cache.people.search("anna", role="Ordförande") == []

    with pytest.raises(ValueError):
        cache.companies.list_cached(sort_by="name; DROP TABLE companies")


def test_stats(tmp_path):
    cache = _cache(tmp_path)
    cache.put(_company())
    cache.put(_company(org="556000-0001", name="Bygg AB", city="Malmö"))
    cache.put_people(ORG, [_person()])

    stats = cache.companies.stats()
    assert stats["total_companies"] == 2
    assert stats["total_people"] == 1
    assert stats["companies_by_city"] == {"Malmö": 1, "Stockholm": 1}
    assert stats["companies_by_status"] == {"Aktiv": 2}
    assert stats["cache_size_mb"] >= 0
