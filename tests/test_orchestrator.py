from __future__ import annotations

import asyncio
import random

import pytest
from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from conftest import (
    ANNA_PATH,
    BASE_URL,
    BO_PATH,
    CIA_PATH,
    COMPANY_PATH,
    ORG,
    QUOTA_PAGE,
    search_card,
    search_page,
)
from models.fetch_outcome import FetchStatus
from scraper import extraction
from scraper.orchestrator import RATE_LIMIT_ID, FetchOrchestrator, FetchRun, FetchState
from services.org_number import InvalidOrgNumberError
from utils.rate_limiter import BackoffStrategy, RateLimiter


SEARCH_URL = f"{BASE_URL}/search?q={ORG}"
COMPANY_URL = f"{BASE_URL}{COMPANY_PATH}"


def _has_element(html: str, selector: str) -> bool:
    return BeautifulSoup(html, "html.parser").select_one(selector) is not None


class FakePage:
    """Serves canned HTML per URL and mimics Playwright's selector waits."""

    def __init__(self, site: dict, visits: list, fail_go_back: bool = False):
        self.site = site
        self.visits = visits
        self.fail_go_back = fail_go_back
        self.history: list = []
        self.closed = False

    @property
    def html(self) -> str:
        return self.site.get(self.history[-1], "<html><body></body></html>") if self.history else ""

    async def goto(self, url, **kwargs):
        self.visits.append(url)
        self.history.append(url)

    async def wait_for_selector(self, selector, timeout=None, **kwargs):
        if selector in (extraction.SEARCH_CARD_SELECTOR, extraction.NAME_SELECTOR):
            found = _has_element(self.html, selector)
        elif selector.startswith(extraction.SEARCH_CARD_SELECTOR + ":has("):
            found = extraction.find_search_match(self.html, ORG, BASE_URL) is not None
        else:
            found = False
        if not found:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def content(self):
        return self.html

    async def go_back(self, **kwargs):
        if self.fail_go_back:
            raise RuntimeError("navigation interrupted")
        self.history.pop()

    async def close(self):
        self.closed = True


class FakePool:
    def __init__(self, site: dict, fail_new_page: int = 0, fail_go_back: bool = False):
        self.site = site
        self.fail_new_page = fail_new_page
        self.fail_go_back = fail_go_back
        self.visits: list = []
        self.pages: list = []
        self.acquired = 0
        self.released = 0
        self.restarts = 0

    async def acquire(self):
        self.acquired += 1
        return object()

    async def new_page(self, handle):
        if self.fail_new_page > 0:
            self.fail_new_page -= 1
            raise RuntimeError("Target page, context or browser has been closed")
        page = FakePage(self.site, self.visits, fail_go_back=self.fail_go_back)
        self.pages.append(page)
        return page

    async def release(self, handle):
        self.released += 1

    async def restart(self):
        self.restarts += 1

    async def close_all(self):
        pass

    def is_healthy(self):
        return True


async def _no_sleep(seconds):
    return None


def _orchestrator(pool, **kwargs) -> FetchOrchestrator:
    limiter = RateLimiter(10, 60_000, clock=lambda: 0.0, sleep=_no_sleep)
    defaults = dict(
        base_url=BASE_URL,
        backoff=BackoffStrategy(10, 100, 2.0, jitter=False, sleep=_no_sleep),
        step_delay_ms=(0, 0),
        sleep=_no_sleep,
        rng=random.Random(0),
    )
    defaults.update(kwargs)
    return FetchOrchestrator(pool, limiter, **defaults)


def _fetch(orchestrator, org=ORG, include_people=True):
    return asyncio.run(orchestrator.fetch_company(org, include_people=include_people))


def test_success_scrapes_company_and_first_person(merinfo_site):
    pool = FakePool(merinfo_site)
    outcome = _fetch(_orchestrator(pool))

    assert outcome.status is FetchStatus.SUCCESS
    assert outcome.company.name == "Acme AB"
    assert outcome.company.financials.revenue == 12345000
    assert outcome.people_scanned is True
    assert [(p.name, p.role) for p in outcome.people] == [("Anna Andersson", "VD")]
    assert outcome.attempts == 1
    assert outcome.warnings == []
    assert pool.restarts == 0
    assert pool.acquired == pool.released == 1
    assert all(p.closed for p in pool.pages)
    assert pool.visits == [SEARCH_URL, COMPANY_URL, f"{BASE_URL}{ANNA_PATH}"]


def test_state_history_for_successful_run(merinfo_site):
    orchestrator = _orchestrator(FakePool(merinfo_site))
    run = FetchRun(orchestrator, ORG, include_people=True)
    asyncio.run(run.execute())
    assert run.history == [
        FetchState.START,
        FetchState.SEARCHING,
        FetchState.LIMIT_CHECK,
        FetchState.DETAIL_SCRAPE,
        FetchState.BOARD_SCRAPE,
        FetchState.DONE,
    ]
    with pytest.raises(RuntimeError):
        asyncio.run(run.execute())


def test_scan_all_takes_first_unseen_person_per_role(merinfo_site):
    pool = FakePool(merinfo_site)
    outcome = _fetch(_orchestrator(pool, people_scan_mode="all"))

    assert [(p.name, p.role) for p in outcome.people] == [
        ("Anna Andersson", "VD"),
        ("Bo Berg", "Ordförande"),
        ("Cia Carlsson", "Styrelseledamot"),
    ]
    assert outcome.people[1].address.city == "Göteborg"
    assert pool.visits.count(f"{BASE_URL}{ANNA_PATH}") == 1
    assert f"{BASE_URL}{BO_PATH}" in pool.visits
    assert f"{BASE_URL}{CIA_PATH}" in pool.visits


def test_without_people_no_person_pages_are_visited(merinfo_site):
    pool = FakePool(merinfo_site)
    outcome = _fetch(_orchestrator(pool), include_people=False)
    assert outcome.ok
    assert outcome.people == []
    assert outcome.people_scanned is False
    assert pool.visits == [SEARCH_URL, COMPANY_URL]


def test_person_details_can_be_disabled(merinfo_site):
    pool = FakePool(merinfo_site)
    outcome = _fetch(_orchestrator(pool, enable_person_details=False))
    assert outcome.ok
    assert outcome.people_scanned is False
    assert pool.visits == [SEARCH_URL, COMPANY_URL]


def test_flagged_company_never_visits_detail_page(merinfo_site):
    merinfo_site[SEARCH_URL] = search_page(search_card(remark="Vi vill anmärka på att bolaget är under likvidation"))
    pool = FakePool(merinfo_site)
    orchestrator = _orchestrator(pool)
    run = FetchRun(orchestrator, ORG, include_people=True)
    outcome = asyncio.run(run.execute())

    assert outcome.status is FetchStatus.FLAGGED
    assert "likvidation" in outcome.reason
    assert outcome.company is None
    assert COMPANY_URL not in pool.visits
    assert pool.restarts == 0
    assert outcome.attempts == 1
    assert run.history[-1] is FetchState.FAILED
    assert FetchState.DETAIL_SCRAPE not in run.history


def test_not_found_is_terminal_on_first_attempt(merinfo_site):
    merinfo_site[SEARCH_URL] = search_page()
    pool = FakePool(merinfo_site)
    outcome = _fetch(_orchestrator(pool))

    assert outcome.status is FetchStatus.NOT_FOUND
    assert outcome.reason == f"Company {ORG} not found"
    assert outcome.attempts == 1
    assert outcome.retryable is False
    assert pool.restarts == 0


def test_results_without_matching_card_are_not_found(merinfo_site):
    merinfo_site[SEARCH_URL] = search_page(search_card(org="556000-0001", href="/foretag/other"))
    pool = FakePool(merinfo_site)
    outcome = _fetch(_orchestrator(pool))

    assert outcome.status is FetchStatus.NOT_FOUND
    assert outcome.attempts == 1
    assert pool.visits == [SEARCH_URL]


def test_quota_page_yields_quota_exceeded_without_restart(merinfo_site):
    merinfo_site[SEARCH_URL] = QUOTA_PAGE
    pool = FakePool(merinfo_site)
    outcome = _fetch(_orchestrator(pool))

    assert outcome.status is FetchStatus.QUOTA_EXCEEDED
    assert outcome.retryable is True
    assert outcome.attempts == 1
    assert pool.restarts == 0


def test_quota_banner_on_detail_page(merinfo_site):
    merinfo_site[COMPANY_URL] = QUOTA_PAGE
    pool = FakePool(merinfo_site)
    outcome = _fetch(_orchestrator(pool))
    assert outcome.status is FetchStatus.QUOTA_EXCEEDED


def test_transient_failure_restarts_once_then_succeeds(merinfo_site):
    pool = FakePool(merinfo_site, fail_new_page=1)
    outcome = _fetch(_orchestrator(pool))

    assert outcome.status is FetchStatus.SUCCESS
    assert outcome.attempts == 2
    assert pool.restarts == 1
    assert pool.acquired == pool.released == 2


def test_transient_failures_exhaust_attempts(merinfo_site):
    pool = FakePool(merinfo_site, fail_new_page=10)
    outcome = _fetch(_orchestrator(pool, max_attempts=3))

    assert outcome.status is FetchStatus.TRANSIENT_ERROR
    assert outcome.retryable is False
    assert outcome.attempts == 3
    assert pool.restarts == 2
    assert "3 attempt" in outcome.reason


def test_failed_navigation_back_is_only_a_warning(merinfo_site):
    pool = FakePool(merinfo_site, fail_go_back=True)
    outcome = _fetch(_orchestrator(pool))

    assert outcome.status is FetchStatus.SUCCESS
    assert len(outcome.people) == 1
    assert len(outcome.warnings) == 1
    assert "navigate back" in outcome.warnings[0]


def test_broken_person_page_is_skipped_with_warning(merinfo_site):
    merinfo_site[f"{BASE_URL}{ANNA_PATH}"] = "<html><body><p>Sidan saknas</p></body></html>"
    pool = FakePool(merinfo_site)
    outcome = _fetch(_orchestrator(pool))

    assert outcome.status is FetchStatus.SUCCESS
    assert outcome.people == []
    assert outcome.people_scanned is True
    assert any("VD" in w for w in outcome.warnings)


def test_every_fetch_takes_one_rate_limit_token(merinfo_site):
    orchestrator = _orchestrator(FakePool(merinfo_site))
    _fetch(orchestrator)
    _fetch(orchestrator, include_people=False)
    assert orchestrator.rate_limiter.get_status(RATE_LIMIT_ID).requests_remaining == 8


def test_invalid_org_number_raises_before_any_navigation(merinfo_site):
    pool = FakePool(merinfo_site)
    with pytest.raises(InvalidOrgNumberError):
        _fetch(_orchestrator(pool), org="12345")
    assert pool.acquired == 0


def test_unknown_scan_mode_rejected(merinfo_site):
    with pytest.raises(ValueError):
        _orchestrator(FakePool(merinfo_site), people_scan_mode="everyone")
