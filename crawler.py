import time
import asyncio
import logging
from collections import deque
from urllib.parse import urljoin, urlsplit
from fastapi.concurrency import run_in_threadpool

from config import AuditSettings
from errors import InvalidUrlError
from models import CrawlStats, ExtractedPage, SiteCrawlResult
from scraper import AuditSession, extract_page, normalize_url, verify_internal_links
from utils.async_helper import url_exists_async

DISALLOWED_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico", ".css", ".js",
    ".zip", ".gz", ".rar", ".doc", ".docx", ".xls", ".xlsx", ".mp3", ".mp4", ".avi", ".mov",
)
DISALLOWED_PATHS = ("/admin", "/wp-admin", "/login", "/register", "/cart", "/checkout")

# new links are only queued while fewer than this share of the budget is used
EXPANSION_CUTOFF = 0.8


def is_crawlable(url: str, host: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or (parts.hostname or "").lower() != host:
        return False
    path = parts.path.lower()
    if path.endswith(DISALLOWED_EXTENSIONS):
        return False
    return not any(fragment in path for fragment in DISALLOWED_PATHS)


def fetch_and_extract(session: AuditSession, url: str) -> ExtractedPage:
    """One crawl step; any failure comes back as a page with `error` set."""
    try:
        return extract_page(session.fetch_page(url))
    except InvalidUrlError as e:
        return ExtractedPage(url=url, error=str(e))
    except Exception as e:
        logging.exception(f"Crawling {url} failed")
        return ExtractedPage(url=url, error=f"Page could not be processed: {e}")


async def crawl_site(url: str, session: AuditSession | None = None, cancel_event=None,
                     verify_links: bool = False) -> SiteCrawlResult:
    """
    Bounded breadth-first crawl of one site.

    Pages are fetched in batches of `crawl_concurrency` on the thread pool. A slot
    in the page budget is reserved for a URL before its fetch starts, so the budget
    is never exceeded. `cancel_event` (threading.Event or asyncio.Event) is checked
    between batches; a fetch that already started always finishes.

    Returns:
        SiteCrawlResult. If the homepage fails, it carries the error and no other pages.
    """
    if session is not None:
        return await _crawl(url, session, cancel_event, verify_links)
    with AuditSession() as owned:
        return await _crawl(url, owned, cancel_event, verify_links)


async def _crawl(url: str, session: AuditSession, cancel_event, verify_links: bool) -> SiteCrawlResult:
    settings = session.settings
    started = time.monotonic()
    stats = CrawlStats()

    try:
        start_url = normalize_url(url)
    except InvalidUrlError as e:
        stats.errors = 1
        return SiteCrawlResult(homepage=ExtractedPage(url=str(url), error=str(e)), stats=stats)

    logging.info(f"Starting site crawl of {start_url} (budget {settings.max_pages} pages)")
    homepage = await run_in_threadpool(fetch_and_extract, session, start_url)
    stats.pages_crawled = 1
    if homepage.error:
        logging.warning(f"Homepage {start_url} could not be crawled: {homepage.error}")
        stats.errors = 1
        stats.elapsed_ms = (time.monotonic() - started) * 1000
        return SiteCrawlResult(homepage=homepage, stats=stats)
    if verify_links:
        await verify_internal_links(homepage, session)

    host = (urlsplit(homepage.url).hostname or "").lower()
    visited = {start_url, homepage.url}
    queued = set()
    frontier = deque()

    def enqueue(page: ExtractedPage, limit: int | None = None):
        added = 0
        for link in page.links.internal:
            if limit is not None and added >= limit:
                break
            if link.broken or not is_crawlable(link.url, host):
                continue
            try:
                candidate = normalize_url(link.url)
            except InvalidUrlError:
                continue
            if candidate in visited or candidate in queued:
                continue
            queued.add(candidate)
            frontier.append(candidate)
            added += 1

    enqueue(homepage)
    other_pages = []
    reported = {homepage.url}
    slots_used = 1

    while frontier and slots_used < settings.max_pages:
        if cancel_event is not None and cancel_event.is_set():
            logging.info(f"Crawl of {start_url} cancelled after {slots_used} pages")
            stats.cancelled = True
            break

        batch = []
        while frontier and slots_used < settings.max_pages and len(batch) < settings.crawl_concurrency:
            next_url = frontier.popleft()
            if next_url in visited:
                continue
            visited.add(next_url)
            slots_used += 1
            batch.append(next_url)
        if not batch:
            break

        pages = await asyncio.gather(*(run_in_threadpool(fetch_and_extract, session, u) for u in batch))
        for page in pages:
            stats.pages_crawled += 1
            if page.error:
                logging.warning(f"Skipping {page.url}: {page.error}")
                stats.errors += 1
                continue
            if page.url in reported:
                continue
            if verify_links:
                await verify_internal_links(page, session)
            visited.add(page.url)
            reported.add(page.url)
            other_pages.append(page)
            if slots_used < settings.max_pages * EXPANSION_CUTOFF:
                enqueue(page, limit=settings.max_links_per_page)

    sitemap_url = urljoin(homepage.url, "/sitemap.xml")
    has_sitemap = await url_exists_async(sitemap_url, settings.sitemap_timeout, settings.user_agent,
                                         session.probe_transport)

    stats.elapsed_ms = (time.monotonic() - started) * 1000
    logging.info(f"Crawl of {start_url} finished: {stats.pages_crawled} pages, {stats.errors} errors")
    return SiteCrawlResult(
        homepage=homepage,
        other_pages=other_pages,
        reached_page_budget=slots_used >= settings.max_pages,
        has_sitemap_xml=has_sitemap,
        stats=stats,
    )


def crawl_site_sync(url: str, settings: AuditSettings | None = None, cancel_event=None,
                    verify_links: bool = False, **session_kwargs) -> SiteCrawlResult:
    """Blocking wrapper for callers without an event loop."""
    with AuditSession(settings, **session_kwargs) as session:
        return asyncio.run(crawl_site(url, session, cancel_event, verify_links))
