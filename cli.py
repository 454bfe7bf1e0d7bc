import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional, Tuple

from config.settings import Settings, get_settings
from db import schema
from db.cache_store import CompanyCache
from db.connection import get_connection
from scraper.browser_pool import BrowserPool
from scraper.orchestrator import RATE_LIMIT_ID, FetchOrchestrator
from services.company_service import CompanyService
from services.freshness import FreshnessPolicy
from utils.logging_setup import init_logging
from utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _open_cache(args) -> CompanyCache:
    conn = get_connection(args.db)
    schema.bootstrap(conn)
    return CompanyCache(conn)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    return RateLimiter(settings.rate_limit_scraping_rpm, 60_000)


def build_fetcher(settings: Settings) -> Tuple[BrowserPool, FetchOrchestrator]:
    """Browser pool plus the orchestrator driving it, wired from settings."""
    pool = BrowserPool(
        max_sessions=settings.max_browser_sessions,
        max_age_seconds=settings.session_max_age_seconds,
        restart_cooldown_seconds=settings.browser_restart_cooldown_seconds,
        headless=settings.playwright_headless,
        timeout_ms=settings.playwright_timeout_ms,
        executable_path=settings.chromium_executable_path,
    )
    orchestrator = FetchOrchestrator.from_settings(settings, pool, build_rate_limiter(settings))
    return pool, orchestrator


async def _with_service(args, call):
    settings = get_settings()
    cache = _open_cache(args)
    pool, orchestrator = build_fetcher(settings)
    service = CompanyService(cache, orchestrator, FreshnessPolicy(cache, settings.cache_stale_days))
    try:
        return await call(service)
    finally:
        logger.debug(f"Browser pool stats: {pool.stats()}")
        await pool.close_all()
        cache.conn.close()


def _run_service(args, call) -> dict:
    result = asyncio.run(_with_service(args, call))
    out = result.to_dict()
    _print_json(out)
    return out


def cmd_bootstrap(args):
    conn = get_connection(args.db)
    schema.bootstrap(conn)
    conn.close()
    print("Schema ready")


def cmd_lookup(args):
    _run_service(
        args,
        lambda s: s.lookup_company(args.org, force_refresh=args.force_refresh, include_board=not args.no_board),
    )


def cmd_board(args):
    _run_service(args, lambda s: s.get_board_members(args.org, force_refresh=args.force_refresh))


def cmd_refresh(args):
    _run_service(args, lambda s: s.refresh_company(args.org))


def _offline_service(cache: CompanyCache) -> CompanyService:
    settings = get_settings()
    # Cache-only commands never reach the fetcher
    return CompanyService(cache, None, FreshnessPolicy(cache, settings.cache_stale_days))  # type: ignore[arg-type]


def cmd_details(args):
    cache = _open_cache(args)
    try:
        _print_json(_offline_service(cache).get_company_details(args.org).to_dict())
    finally:
        cache.conn.close()


def cmd_financials(args):
    cache = _open_cache(args)
    try:
        _print_json(_offline_service(cache).get_financials(args.org))
    finally:
        cache.conn.close()


def cmd_tax(args):
    cache = _open_cache(args)
    try:
        _print_json(_offline_service(cache).get_tax_information(args.org))
    finally:
        cache.conn.close()


def _companies_payload(companies) -> List[dict]:
    return [c.model_dump(mode="json") for c in companies]


def cmd_search_name(args):
    cache = _open_cache(args)
    try:
        results = cache.companies.search_by_name(args.query, limit=args.limit)
        _print_json({"success": True, "count": len(results), "results": _companies_payload(results)})
    finally:
        cache.conn.close()


def cmd_search_industry(args):
    cache = _open_cache(args)
    try:
        results = cache.companies.search_by_industry(
            sni_code=args.sni_code,
            category=args.category,
            city=args.city,
            min_revenue=args.min_revenue,
            limit=args.limit,
        )
        _print_json({"success": True, "count": len(results), "results": _companies_payload(results)})
    finally:
        cache.conn.close()


def cmd_search_person(args):
    cache = _open_cache(args)
    try:
        results = cache.people.search(args.name, role=args.role, limit=args.limit)
        _print_json({
            "success": True,
            "count": len(results),
            "results": [p.model_dump(mode="json") for p in results],
        })
    finally:
        cache.conn.close()


def cmd_cached(args):
    cache = _open_cache(args)
    try:
        has_remarks: Optional[bool] = None
        if args.has_remarks is not None:
            has_remarks = args.has_remarks == "yes"
        results = cache.companies.list_cached(
            city=args.city,
            status=args.status,
            has_remarks=has_remarks,
            sort_by=args.sort_by,
            order=args.order,
            limit=args.limit,
            offset=args.offset,
        )
        _print_json({"success": True, "count": len(results), "results": _companies_payload(results)})
    finally:
        cache.conn.close()


def cmd_stats(args):
    cache = _open_cache(args)
    try:
        _print_json({"success": True, **cache.companies.stats()})
    finally:
        cache.conn.close()


def cmd_clear_cache(args):
    if not args.yes:
        _print_json({"success": False, "error": "Refusing to clear cache without --yes"})
        sys.exit(2)
    settings = get_settings()
    days = args.older_than_days if args.older_than_days is not None else settings.cache_ttl_days
    cache = _open_cache(args)
    try:
        deleted = cache.companies.clear_older_than(days)
        logger.info(f"Cleared {deleted} cached companies older than {days} days", extra={"step": "clear_cache"})
        _print_json({"success": True, "deleted": deleted, "older_than_days": days})
    finally:
        cache.conn.close()


def cmd_rate_status(args):
    # Buckets are per process; only the configured limit is known here
    settings = get_settings()
    limiter = build_rate_limiter(settings)
    _print_json({
        "success": True,
        "identifier": RATE_LIMIT_ID,
        "limit_per_minute": limiter.max_requests,
        "window_ms": limiter.window_ms,
        "refill_interval_ms": limiter.window_ms // limiter.max_requests,
        "scope": "per_process",
    })


def _add_org(p: argparse.ArgumentParser) -> None:
    p.add_argument("--org", required=True, help="Organization number (XXXXXX-XXXX)")


def main(argv: Optional[List[str]] = None):
    settings = get_settings()
    init_logging(settings.log_level)
    parser = argparse.ArgumentParser(description="Company registry lookup CLI")
    parser.add_argument("--db", default=settings.db_path, help="Path to SQLite DB (default from settings)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_boot = sub.add_parser("bootstrap", help="Create tables and indexes")
    p_boot.set_defaults(func=cmd_bootstrap)

    p_look = sub.add_parser("lookup", help="Cache-first company lookup, fetching live when missing or stale")
    _add_org(p_look)
    p_look.add_argument("--force-refresh", action="store_true", help="Bypass the cache")
    p_look.add_argument("--no-board", action="store_true", help="Skip board members")
    p_look.set_defaults(func=cmd_lookup)

    p_board = sub.add_parser("board", help="Board members and key people of a company")
    _add_org(p_board)
    p_board.add_argument("--force-refresh", action="store_true", help="Bypass the cache")
    p_board.set_defaults(func=cmd_board)

    p_ref = sub.add_parser("refresh", help="Force a live fetch and update the cache")
    _add_org(p_ref)
    p_ref.set_defaults(func=cmd_refresh)

    p_det = sub.add_parser("details", help="Cached company record with age and staleness")
    _add_org(p_det)
    p_det.set_defaults(func=cmd_details)

    p_fin = sub.add_parser("financials", help="Cached key financial figures")
    _add_org(p_fin)
    p_fin.set_defaults(func=cmd_financials)

    p_tax = sub.add_parser("tax", help="Cached tax registration status")
    _add_org(p_tax)
    p_tax.set_defaults(func=cmd_tax)

    p_sn = sub.add_parser("search-name", help="Search cached companies by name or description")
    p_sn.add_argument("--query", "-q", required=True)
    p_sn.add_argument("--limit", type=int, default=20)
    p_sn.set_defaults(func=cmd_search_name)

    p_si = sub.add_parser("search-industry", help="Filter cached companies by SNI code, category, city or revenue")
    p_si.add_argument("--sni-code", default=None)
    p_si.add_argument("--category", default=None)
    p_si.add_argument("--city", default=None)
    p_si.add_argument("--min-revenue", type=int, default=None, help="Minimum revenue in SEK")
    p_si.add_argument("--limit", type=int, default=20)
    p_si.set_defaults(func=cmd_search_industry)

    p_sp = sub.add_parser("search-person", help="Search cached people by name")
    p_sp.add_argument("--name", required=True)
    p_sp.add_argument("--role", default=None)
    p_sp.add_argument("--limit", type=int, default=20)
    p_sp.set_defaults(func=cmd_search_person)

    p_list = sub.add_parser("cached", help="List cached companies")
    p_list.add_argument("--city", default=None)
    p_list.add_argument("--status", default=None)
    p_list.add_argument("--has-remarks", choices=["yes", "no"], default=None)
    p_list.add_argument("--sort-by", choices=["name", "revenue", "scraped_at"], default="scraped_at")
    p_list.add_argument("--order", choices=["asc", "desc"], default="desc")
    p_list.add_argument("--limit", type=int, default=20)
    p_list.add_argument("--offset", type=int, default=0)
    p_list.set_defaults(func=cmd_cached)

    p_stats = sub.add_parser("stats", help="Cache statistics")
    p_stats.set_defaults(func=cmd_stats)

    p_clear = sub.add_parser("clear-cache", help="Delete cached companies older than N days")
    p_clear.add_argument("--older-than-days", type=float, default=None, help="Default: CACHE_TTL_DAYS")
    p_clear.add_argument("--yes", action="store_true", help="Confirm deletion")
    p_clear.set_defaults(func=cmd_clear_cache)

    p_rate = sub.add_parser("rate-status", help="Show the configured scraping rate limit")
    p_rate.set_defaults(func=cmd_rate_status)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
