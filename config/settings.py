from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


PEOPLE_SCAN_MODES = ("first", "all")


def _load_env() -> None:
    # Centralized dotenv loading; safe if .env missing
    load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    base_url: str = "https://www.merinfo.se"

    # Core/runtime
    db_path: str = "data/merinfo.db"
    log_level: str = "INFO"
    run_env: str = "local"

    # Browser
    playwright_headless: bool = True
    playwright_timeout_ms: int = 30000
    chromium_executable_path: Optional[str] = None
    max_browser_sessions: int = 3
    session_max_age_seconds: int = 600
    browser_restart_cooldown_seconds: int = 5

    # Limits/retries
    rate_limit_scraping_rpm: int = 10
    fetch_max_attempts: int = 3
    backoff_initial_ms: int = 2000
    backoff_max_ms: int = 30000
    backoff_multiplier: float = 2.0
    backoff_jitter: bool = True

    # Navigation pacing/timeouts
    step_delay_min_ms: int = 1000
    step_delay_max_ms: int = 2500
    search_result_timeout_ms: int = 10000
    search_card_timeout_ms: int = 5000
    page_ready_timeout_ms: int = 10000

    # Cache
    cache_stale_days: int = 7
    cache_ttl_days: int = 30

    # Feature flags
    enable_person_details: bool = True
    people_scan_mode: str = "first"  # first | all


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    _load_env()
    people_scan_mode = os.getenv("PEOPLE_SCAN_MODE", "first").strip().lower()
    step_delay_min_ms = int(os.getenv("STEP_DELAY_MIN_MS", "1000"))
    step_delay_max_ms = int(os.getenv("STEP_DELAY_MAX_MS", "2500"))
    max_browser_sessions = int(os.getenv("MAX_BROWSER_SESSIONS", "3"))

    if people_scan_mode not in PEOPLE_SCAN_MODES:
        raise RuntimeError(
            f"PEOPLE_SCAN_MODE must be one of {', '.join(PEOPLE_SCAN_MODES)}, got '{people_scan_mode}'"
        )
    if step_delay_min_ms > step_delay_max_ms:
        raise RuntimeError("STEP_DELAY_MIN_MS must not exceed STEP_DELAY_MAX_MS")
    if max_browser_sessions <= 0:
        raise RuntimeError("MAX_BROWSER_SESSIONS must be a positive integer")

    return Settings(
        base_url=os.getenv("MERINFO_BASE_URL", "https://www.merinfo.se").rstrip("/"),
        db_path=os.getenv("DB_PATH", "data/merinfo.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        run_env=os.getenv("RUN_ENV", "local"),
        playwright_headless=_env_bool("PLAYWRIGHT_HEADLESS", True),
        playwright_timeout_ms=int(os.getenv("PLAYWRIGHT_TIMEOUT", "30000")),
        chromium_executable_path=os.getenv("PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH") or None,
        max_browser_sessions=max_browser_sessions,
        session_max_age_seconds=int(os.getenv("SESSION_MAX_AGE_SECONDS", "600")),
        browser_restart_cooldown_seconds=int(os.getenv("BROWSER_RESTART_COOLDOWN_SECONDS", "5")),
        rate_limit_scraping_rpm=int(os.getenv("RATE_LIMIT_SCRAPING_RPM", "10")),
        fetch_max_attempts=int(os.getenv("FETCH_MAX_ATTEMPTS", "3")),
        backoff_initial_ms=int(os.getenv("BACKOFF_INITIAL_MS", "2000")),
        backoff_max_ms=int(os.getenv("BACKOFF_MAX_MS", "30000")),
        backoff_multiplier=float(os.getenv("BACKOFF_MULTIPLIER", "2")),
        backoff_jitter=_env_bool("BACKOFF_JITTER", True),
        step_delay_min_ms=step_delay_min_ms,
        step_delay_max_ms=step_delay_max_ms,
        search_result_timeout_ms=int(os.getenv("SEARCH_RESULT_TIMEOUT_MS", "10000")),
        search_card_timeout_ms=int(os.getenv("SEARCH_CARD_TIMEOUT_MS", "5000")),
        page_ready_timeout_ms=int(os.getenv("PAGE_READY_TIMEOUT_MS", "10000")),
        cache_stale_days=int(os.getenv("CACHE_STALE_DAYS", "7")),
        cache_ttl_days=int(os.getenv("CACHE_TTL_DAYS", "30")),
        enable_person_details=_env_bool("ENABLE_PERSON_DETAILS", True),
        people_scan_mode=people_scan_mode,
    )
