"""Live fetch of one company from merinfo.se.

Each ``fetch_company`` call walks a single-use state machine::

    START -> SEARCHING -> LIMIT_CHECK -> DETAIL_SCRAPE -> (BOARD_SCRAPE) -> DONE
                                   \\-> FAILED (from any state)

START takes one token from the shared rate limiter, which makes it the
admission gate for every concurrent caller. SEARCHING..BOARD_SCRAPE form one
attempt; transient failures re-run the attempt through ``with_retry`` with
a pool restart before every retry. Page parsing lives in
``scraper.extraction``; this module only drives navigation and classifies
failures into a ``FetchOutcome``.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple
from urllib.parse import quote

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config.settings import PEOPLE_SCAN_MODES, Settings
from models.company_record import CompanyRecord
from models.fetch_outcome import FetchOutcome
from models.person_record import BOARD_ROLES, PersonRecord
from ports.browser import PagePort, SessionPoolPort
from scraper import extraction
from scraper.errors import (
    FlaggedCompanyError,
    NoSuchCompanyError,
    ScraperError,
    SearchLimitError,
    TransientScrapeError,
)
from services.org_number import normalize_org_number
from utils.rate_limiter import BackoffStrategy, RateLimiter, with_retry

logger = logging.getLogger(__name__)


RATE_LIMIT_ID = "merinfo_scraper"


class FetchState(str, Enum):
    START = "start"
    SEARCHING = "searching"
    LIMIT_CHECK = "limit_check"
    DETAIL_SCRAPE = "detail_scrape"
    BOARD_SCRAPE = "board_scrape"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = (FetchState.DONE, FetchState.FAILED)


def _is_timeout(error: BaseException) -> bool:
    return isinstance(error, (PlaywrightTimeoutError, asyncio.TimeoutError))


class FetchOrchestrator:
    """Coordinates the rate limiter, the session pool and page extraction."""

    def __init__(
        self,
        pool: SessionPoolPort,
        rate_limiter: RateLimiter,
        *,
        base_url: str = "https://www.merinfo.se",
        max_attempts: int = 3,
        backoff: Optional[BackoffStrategy] = None,
        step_delay_ms: Tuple[int, int] = (1000, 2500),
        search_result_timeout_ms: int = 10000,
        search_card_timeout_ms: int = 5000,
        page_ready_timeout_ms: int = 10000,
        enable_person_details: bool = True,
        people_scan_mode: str = "first",
        restart_from_attempt: int = 2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        if people_scan_mode not in PEOPLE_SCAN_MODES:
            raise ValueError(f"people_scan_mode must be one of {PEOPLE_SCAN_MODES}")
        self.pool = pool
        self.rate_limiter = rate_limiter
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.backoff = backoff or BackoffStrategy(sleep=sleep)
        self.step_delay_ms = step_delay_ms
        self.search_result_timeout_ms = search_result_timeout_ms
        self.search_card_timeout_ms = search_card_timeout_ms
        self.page_ready_timeout_ms = page_ready_timeout_ms
        self.enable_person_details = enable_person_details
        self.people_scan_mode = people_scan_mode
        self.restart_from_attempt = restart_from_attempt
        self._sleep = sleep
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls, settings: Settings, pool: SessionPoolPort, rate_limiter: RateLimiter
    ) -> "FetchOrchestrator":
        return cls(
            pool,
            rate_limiter,
            base_url=settings.base_url,
            max_attempts=settings.fetch_max_attempts,
            backoff=BackoffStrategy(
                initial_delay_ms=settings.backoff_initial_ms,
                max_delay_ms=settings.backoff_max_ms,
                multiplier=settings.backoff_multiplier,
                jitter=settings.backoff_jitter,
            ),
            step_delay_ms=(settings.step_delay_min_ms, settings.step_delay_max_ms),
            search_result_timeout_ms=settings.search_result_timeout_ms,
            search_card_timeout_ms=settings.search_card_timeout_ms,
            page_ready_timeout_ms=settings.page_ready_timeout_ms,
            enable_person_details=settings.enable_person_details,
            people_scan_mode=settings.people_scan_mode,
        )

    async def fetch_company(self, org_number: str, include_people: bool = True) -> FetchOutcome:
        """Fetch one company live. Raises InvalidOrgNumberError for malformed keys."""
        org = normalize_org_number(org_number)
        return await FetchRun(self, org, include_people).execute()

    async def random_delay(self) -> None:
        low, high = self.step_delay_ms
        await self._sleep(self._rng.uniform(low, high) / 1000.0)


class FetchRun:
    """One invocation of the navigation state machine; not reusable."""

    def __init__(self, orchestrator: FetchOrchestrator, org_number: str, include_people: bool):
        self.o = orchestrator
        self.org_number = org_number
        self.include_people = include_people
        self.state = FetchState.START
        self.history: List[FetchState] = [FetchState.START]
        self.attempts = 0
        self.warnings: List[str] = []

    def _transition(self, state: FetchState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Fetch run already finished in state {self.state.value}")
        self.state = state
        self.history.append(state)
        logger.debug(
            f"Fetch state -> {state.value}",
            extra={"org_number": self.org_number, "step": state.value},
        )

    async def execute(self) -> FetchOutcome:
        if len(self.history) > 1:
            raise RuntimeError("FetchRun is single-use")
        started = time.monotonic()

        await self.o.rate_limiter.wait_for_slot(RATE_LIMIT_ID)

        try:
            company, people, scanned = await with_retry(
                self._attempt,
                max_attempts=self.o.max_attempts,
                backoff=self.o.backoff,
                is_retryable=lambda e: isinstance(e, ScraperError) and e.retryable,
                on_retry=self._on_retry,
            )
        except NoSuchCompanyError:
            outcome = FetchOutcome.not_found(self.org_number, attempts=self.attempts)
        except FlaggedCompanyError as e:
            outcome = FetchOutcome.flagged(e.reason, attempts=self.attempts)
        except SearchLimitError as e:
            outcome = FetchOutcome.quota_exceeded(str(e), attempts=self.attempts)
        except ScraperError as e:
            outcome = FetchOutcome.transient_error(
                f"Fetch failed after {self.attempts} attempt(s): {e}",
                retryable=False,
                attempts=self.attempts,
            )
        else:
            self._transition(FetchState.DONE)
            outcome = FetchOutcome.success(
                company,
                people,
                people_scanned=scanned,
                attempts=self.attempts,
                warnings=self.warnings,
            )

        if self.state is not FetchState.DONE:
            self._transition(FetchState.FAILED)
        self._log_outcome(outcome, int((time.monotonic() - started) * 1000))
        return outcome

    def _log_outcome(self, outcome: FetchOutcome, duration_ms: int) -> None:
        extra = {
            "org_number": self.org_number,
            "step": "fetch_company",
            "status": outcome.status.value,
            "duration_ms": duration_ms,
            "cached": False,
        }
        if outcome.ok:
            logger.info(f"Fetch completed: {self.org_number}", extra=extra)
        else:
            extra["error"] = outcome.reason
            logger.error(f"Fetch failed: {outcome.reason}", extra=extra)

    async def _on_retry(self, attempt: int, error: BaseException) -> None:
        logger.warning(
            f"Retrying fetch (attempt {attempt}/{self.o.max_attempts})",
            extra={"org_number": self.org_number, "status": "retry", "error": str(error)},
        )
        if attempt < self.o.restart_from_attempt:
            return
        try:
            await self.o.pool.restart()
        except Exception as e:
            # The next attempt re-initializes the browser on acquire
            logger.error("Browser restart failed", extra={"org_number": self.org_number, "error": str(e)})

    async def _attempt(self) -> Tuple[CompanyRecord, List[PersonRecord], bool]:
        self.attempts += 1
        page: Optional[PagePort] = None
        handle = None
        try:
            handle = await self.o.pool.acquire()
            page = await self.o.pool.new_page(handle)

            match = await self._search(page)
            await self._limit_check(page)
            if match.flagged:
                logger.warning(
                    "Company has remarks, skipping",
                    extra={"org_number": self.org_number, "status": "flagged"},
                )
                raise FlaggedCompanyError(self.org_number, match.flag_reason or "Company is flagged")

            company, detail_html = await self._scrape_detail(page, match.url)

            people: List[PersonRecord] = []
            scanned = False
            if self.include_people and self.o.enable_person_details:
                people = await self._scrape_board(page, detail_html)
                scanned = True
            return company, people, scanned
        except ScraperError:
            raise
        except Exception as e:
            logger.error(
                f"Navigation failed in state {self.state.value}",
                extra={"org_number": self.org_number, "step": self.state.value, "error": str(e)},
            )
            raise TransientScrapeError(f"{self.state.value}: {e}") from e
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception as e:
                    logger.debug(f"Error closing page: {e}")
            if handle is not None:
                await self.o.pool.release(handle)

    async def _search(self, page: PagePort) -> extraction.SearchMatch:
        self._transition(FetchState.SEARCHING)
        await self.o.random_delay()
        url = f"{self.o.base_url}/search?q={quote(self.org_number)}"
        await page.goto(url, wait_until="domcontentloaded")

        try:
            await page.wait_for_selector(
                extraction.SEARCH_CARD_SELECTOR, timeout=self.o.search_result_timeout_ms
            )
        except PlaywrightError as e:
            if not _is_timeout(e):
                raise
            if extraction.is_search_limit_page(await page.content()):
                raise SearchLimitError() from e
            raise NoSuchCompanyError(self.org_number) from e

        html = await page.content()
        match = extraction.find_search_match(html, self.org_number, self.o.base_url)
        if match is None:
            card = f'{extraction.SEARCH_CARD_SELECTOR}:has(p:text-is("{self.org_number}"))'
            try:
                await page.wait_for_selector(card, timeout=self.o.search_card_timeout_ms)
            except PlaywrightError as e:
                if not _is_timeout(e):
                    raise
                raise NoSuchCompanyError(self.org_number) from e
            match = extraction.find_search_match(await page.content(), self.org_number, self.o.base_url)
        if match is None:
            raise NoSuchCompanyError(self.org_number)
        return match

    async def _limit_check(self, page: PagePort) -> None:
        self._transition(FetchState.LIMIT_CHECK)
        if extraction.is_search_limit_page(await page.content()):
            raise SearchLimitError()

    async def _scrape_detail(self, page: PagePort, url: str) -> Tuple[CompanyRecord, str]:
        self._transition(FetchState.DETAIL_SCRAPE)
        await self.o.random_delay()
        await page.goto(url, wait_until="domcontentloaded")
        try:
            await page.wait_for_selector(extraction.NAME_SELECTOR, timeout=self.o.page_ready_timeout_ms)
        except PlaywrightError as e:
            if _is_timeout(e) and extraction.is_search_limit_page(await page.content()):
                raise SearchLimitError() from e
            raise
        html = await page.content()
        return extraction.extract_company(html, url, self.org_number), html

    def _person_candidates(self, detail_html: str) -> List[Tuple[str, str]]:
        candidates: List[Tuple[str, str]] = []
        seen: set[str] = set()
        for role in BOARD_ROLES:
            links = [u for u in extraction.find_person_links(detail_html, role, self.o.base_url) if u not in seen]
            if not links:
                continue
            candidates.append((role, links[0]))
            seen.add(links[0])
            if self.o.people_scan_mode == "first":
                # Only the first person across the whole role list
                break
        return candidates

    async def _scrape_board(self, page: PagePort, detail_html: str) -> List[PersonRecord]:
        self._transition(FetchState.BOARD_SCRAPE)
        people: List[PersonRecord] = []
        for role, person_url in self._person_candidates(detail_html):
            person = await self._scrape_person(page, person_url, role)
            if person is not None:
                people.append(person)
            await self._return_to_detail(page)
        return people

    async def _scrape_person(self, page: PagePort, url: str, role: str) -> Optional[PersonRecord]:
        await self.o.random_delay()
        try:
            await page.goto(url, wait_until="domcontentloaded")
            await page.wait_for_selector(extraction.NAME_SELECTOR, timeout=self.o.page_ready_timeout_ms)
            return extraction.extract_person(await page.content(), url, self.org_number, role)
        except Exception as e:
            message = f"Could not scrape {role} page {url}: {e}"
            self.warnings.append(message)
            logger.warning(message, extra={"org_number": self.org_number, "step": "board_scrape"})
            return None

    async def _return_to_detail(self, page: PagePort) -> None:
        try:
            await page.go_back(wait_until="domcontentloaded")
            await page.wait_for_selector(extraction.NAME_SELECTOR, timeout=self.o.page_ready_timeout_ms)
        except Exception as e:
            message = f"Could not navigate back to company page: {e}"
            self.warnings.append(message)
            logger.warning(message, extra={"org_number": self.org_number, "step": "board_scrape"})
