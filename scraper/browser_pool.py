"""Bounded pool of reusable Playwright browser contexts.

Isolation is best-effort: once the pool is at capacity, ``acquire`` hands out
the oldest live session even if another fetch currently holds it. Callers
that need exclusive sessions must serialize around the handle themselves.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


CHROMIUM_ARGS: List[str] = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-setuid-sandbox",
]

USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

VIEWPORTS: List[tuple[int, int]] = [(1920, 1080), (1680, 1050), (1536, 864), (1440, 900)]

LOCALES: List[tuple[str, str]] = [
    ("sv-SE", "Europe/Stockholm"),
    ("en-SE", "Europe/Stockholm"),
    ("en-GB", "Europe/Stockholm"),
]

HIDE_WEBDRIVER_SCRIPT = "Object.defineProperty(navigator, 'webdriver', { get: () => false });"


@dataclass(frozen=True)
class SessionFingerprint:
    viewport_width: int
    viewport_height: int
    device_scale_factor: float
    user_agent: str
    locale: str
    timezone_id: str

    @classmethod
    def random(cls, rng: random.Random) -> "SessionFingerprint":
        width, height = rng.choice(VIEWPORTS)
        locale, tz = rng.choice(LOCALES)
        return cls(
            viewport_width=width,
            viewport_height=height,
            device_scale_factor=round(1 + rng.random() * 0.2, 3),
            user_agent=rng.choice(USER_AGENTS),
            locale=locale,
            timezone_id=tz,
        )

    def context_options(self) -> dict:
        return {
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
            "device_scale_factor": self.device_scale_factor,
            "user_agent": self.user_agent,
            "locale": self.locale,
            "timezone_id": self.timezone_id,
        }


@dataclass
class SessionHandle:
    context: Any
    created_at: float
    fingerprint: SessionFingerprint
    checkouts: int = field(default=0)

    def age_seconds(self, now: float) -> float:
        return now - self.created_at


class BrowserPool:
    """Owns one Chromium instance and at most ``max_sessions`` contexts.

    ``launcher`` replaces the Playwright launch (it must return an object with
    ``new_context(**opts)``, ``close()`` and ``is_connected()``); tests use it
    to run without a browser.
    """

    def __init__(
        self,
        max_sessions: int = 3,
        max_age_seconds: float = 600,
        restart_cooldown_seconds: float = 5,
        headless: bool = True,
        timeout_ms: int = 30000,
        executable_path: Optional[str] = None,
        *,
        launcher: Optional[Callable[[], Awaitable[Any]]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        if max_sessions <= 0:
            raise ValueError("max_sessions must be positive")
        self.max_sessions = max_sessions
        self.max_age_seconds = max_age_seconds
        self.restart_cooldown_seconds = restart_cooldown_seconds
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.executable_path = executable_path
        self._launcher = launcher
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._playwright: Any = None
        self._browser: Any = None
        self._sessions: List[SessionHandle] = []
        self._lock = asyncio.Lock()

    @property
    def size(self) -> int:
        return len(self._sessions)

    async def initialize(self) -> None:
        if self._browser is not None:
            return
        logger.info("Initializing browser", extra={"step": "browser_init"})
        try:
            if self._launcher is not None:
                self._browser = await self._launcher()
            else:
                from playwright.async_api import async_playwright

                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=CHROMIUM_ARGS,
                    executable_path=self.executable_path,
                )
        except Exception as e:
            logger.error(
                "Failed to launch Chromium browser",
                extra={"step": "browser_init", "status": "error", "error": str(e)},
            )
            await self._stop_driver()
            raise
        logger.info("Browser initialized", extra={"step": "browser_init", "status": "ok"})

    async def acquire(self) -> SessionHandle:
        """Return a session, creating one while under the bound."""
        async with self._lock:
            if self._browser is None:
                await self.initialize()
            await self._evict_expired_locked()
            if len(self._sessions) < self.max_sessions:
                handle = await self._create_session()
                self._sessions.append(handle)
            else:
                handle = min(self._sessions, key=lambda h: h.created_at)
                logger.debug(f"Pool at capacity ({self.max_sessions}); reusing oldest session")
            handle.checkouts += 1
            return handle

    async def _create_session(self) -> SessionHandle:
        fingerprint = SessionFingerprint.random(self._rng)
        context = await self._browser.new_context(**fingerprint.context_options())
        await context.add_init_script(HIDE_WEBDRIVER_SCRIPT)
        logger.debug(f"Created browser context ua={fingerprint.user_agent!r} locale={fingerprint.locale}")
        return SessionHandle(context=context, created_at=self._clock(), fingerprint=fingerprint)

    async def new_page(self, handle: SessionHandle) -> Any:
        page = await handle.context.new_page()
        page.set_default_timeout(self.timeout_ms)
        return page

    async def release(self, handle: SessionHandle) -> None:
        # Sessions stay pooled for reuse
        if handle.checkouts > 0:
            handle.checkouts -= 1

    async def evict_expired(self) -> int:
        async with self._lock:
            return await self._evict_expired_locked()

    async def _evict_expired_locked(self) -> int:
        now = self._clock()
        expired = [h for h in self._sessions if h.age_seconds(now) > self.max_age_seconds]
        for handle in expired:
            self._sessions.remove(handle)
            await self._close_context(handle)
        if expired:
            logger.debug(f"Evicted {len(expired)} expired browser context(s)")
        return len(expired)

    async def restart(self) -> None:
        """Tear everything down, wait the cooldown, then relaunch."""
        logger.warning("Restarting browser", extra={"step": "browser_restart"})
        async with self._lock:
            await self._close_all_locked()
            await self._sleep(self.restart_cooldown_seconds)
            await self.initialize()

    async def close_all(self) -> None:
        async with self._lock:
            await self._close_all_locked()

    async def _close_all_locked(self) -> None:
        sessions, self._sessions = self._sessions, []
        for handle in sessions:
            await self._close_context(handle)
        if self._browser is not None:
            try:
                await self._browser.close()
                logger.info("Browser closed")
            except Exception as e:
                logger.error("Error closing browser", extra={"error": str(e)})
        self._browser = None
        await self._stop_driver()

    async def _close_context(self, handle: SessionHandle) -> None:
        try:
            await handle.context.close()
        except Exception as e:
            logger.error("Error closing browser context", extra={"error": str(e)})

    async def _stop_driver(self) -> None:
        if self._playwright is None:
            return
        try:
            await self._playwright.stop()
        except Exception as e:
            logger.error("Error stopping Playwright driver", extra={"error": str(e)})
        self._playwright = None

    def is_healthy(self) -> bool:
        if self._browser is None:
            return False
        try:
            return bool(self._browser.is_connected())
        except Exception:
            return False

    def stats(self) -> dict:
        now = self._clock()
        return {
            "healthy": self.is_healthy(),
            "sessions": len(self._sessions),
            "max_sessions": self.max_sessions,
            "in_use": sum(1 for h in self._sessions if h.checkouts > 0),
            "oldest_age_seconds": max((h.age_seconds(now) for h in self._sessions), default=0.0),
        }
