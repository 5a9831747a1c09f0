import re
import json
import time
import socket
import asyncio
import logging
import threading
from urllib.parse import urljoin, urlsplit, urlunsplit, urldefrag
from bs4 import BeautifulSoup
from requests import Session, exceptions
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
import urllib3

from config import AuditSettings
from errors import (
    DnsUnavailableError, HttpError, InvalidUrlError, NetworkError, NonHtmlContentError, PageExtractionError,
)
from models import (
    AccessibilityFlags, DomainCheck, ExternalLink, ExtractedPage, FetchStatus, Headings,
    ImageInfo, InternalLink, MetaTags, PageContent, PageFetchResult, PageLinks,
    PerformanceInfo, ResponsiveSignals, SchemaItem, SecurityFlags, SeoIssues,
)
from Features.MixedContentTest import mixed_content_test
from Features.SecurityHeadersTest import security_headers_test
from Features.MetaRefreshTest import meta_refresh_test
from Features.ResponsiveImageTest import responsive_image_test
from Features.MediaQueryResponsiveTest import media_query_responsive_test
from Features.ViewportTest import viewport_test
from utils.async_helper import probe_client, head_status

# TLS certificates are deliberately not verified
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
SKIPPED_HREF_PREFIXES = ("javascript:", "mailto:", "tel:")
STRIPPED_CONTENT_TAGS = ["script", "style", "noscript", "iframe", "object", "embed"]
ARIA_ATTRIBUTES = ["aria-label", "aria-describedby", "aria-labelledby", "role"]
THIN_CONTENT_WORDS = 300
REDIRECT_STATUS_CODES = (301, 302, 303, 307, 308)

STATUS_DESCRIPTIONS = {
    400: "Bad Request - the server could not understand the request",
    401: "Unauthorized - authentication is required to access this page",
    402: "Payment Required",
    403: "Forbidden - access to this page is denied",
    404: "Not Found - the page does not exist",
    405: "Method Not Allowed",
    406: "Not Acceptable",
    407: "Proxy Authentication Required",
    408: "Request Timeout - the server timed out waiting for the request",
    409: "Conflict",
    410: "Gone - the page has been permanently removed",
    429: "Too Many Requests - the server is rate limiting requests",
    500: "Internal Server Error - the server encountered an unexpected condition",
    501: "Not Implemented",
    502: "Bad Gateway - the upstream server returned an invalid response",
    503: "Service Unavailable - the server is temporarily overloaded or down",
    504: "Gateway Timeout - the upstream server did not respond in time",
}

_SCHEME_PREFIXES = re.compile(r"^(?:https?://)+", re.IGNORECASE)
_OTHER_SCHEME = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)
_SINGLE_SLASH_SCHEME = re.compile(r"^[a-z][a-z0-9+.\-]*:/(?!/)", re.IGNORECASE)
_BAD_HOST_CHARS = re.compile(r"[\s<>\"{}|\\^`%]")
_CHARSET = re.compile(r"charset\s*=\s*[\"']?([\w\-:.]+)", re.IGNORECASE)


def describe_status(status_code: int) -> str:
    return STATUS_DESCRIPTIONS.get(status_code, f"HTTP error {status_code}")


def normalize_url(raw: str) -> str:
    """
    Canonicalizes user input into one absolute http(s) URL.

    'example.com' becomes 'https://example.com/', 'https://https://x.org' becomes
    'https://x.org/'. The #fragment is dropped. Applying it twice gives the
    same result.

    Raises:
        InvalidUrlError: the input cannot be repaired into a valid URL.
    """
    candidate = (raw or "").strip() if isinstance(raw, str) else ""
    if not candidate:
        raise InvalidUrlError("URL is empty", url=raw)

    if match := _SCHEME_PREFIXES.match(candidate):
        scheme = match.group(0).split("://", 1)[0].lower()
        candidate = f"{scheme}://{candidate[match.end():]}"
    elif _SINGLE_SLASH_SCHEME.match(candidate):
        raise InvalidUrlError(f"Malformed URL scheme in '{candidate}'", url=raw)
    elif _OTHER_SCHEME.match(candidate):
        raise InvalidUrlError(f"Unsupported URL scheme in '{candidate}'", url=raw)
    else:
        candidate = "https://" + candidate.lstrip("/")

    if re.search(r"\s", candidate):
        raise InvalidUrlError(f"URL contains whitespace: '{candidate}'", url=raw)
    try:
        parts = urlsplit(candidate)
        hostname = parts.hostname
        _ = parts.port
    except ValueError as e:
        raise InvalidUrlError(f"Invalid URL '{candidate}': {e}", url=raw) from e
    if not hostname or _BAD_HOST_CHARS.search(hostname) or hostname.startswith(".") or ".." in hostname:
        raise InvalidUrlError(f"Invalid host in URL '{candidate}'", url=raw)

    netloc = parts.netloc
    if "@" in netloc:
        userinfo, _, hostport = netloc.rpartition("@")
        netloc = f"{userinfo}@{hostport.lower()}"
    else:
        netloc = netloc.lower()
    return urlunsplit((parts.scheme.lower(), netloc, parts.path or "/", parts.query, ""))


def build_http_session(settings: AuditSettings) -> Session:
    session = Session()
    # one attempt per hop; AuditSession enforces the overall fetch deadline
    retries = Retry(total=0, read=False, raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retries)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    session.headers.update({
        'User-Agent': settings.user_agent,
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.9',
    })
    return session


class AuditSession:
    """
    State shared by every stage of one analysis or one site crawl: DNS cache,
    fetch cache, known-broken links and the per-host request throttle.
    Nothing in here outlives the session, so concurrent audits never interfere.
    """

    def __init__(self, settings: AuditSettings | None = None, http: Session | None = None,
                 resolver=None, probe_transport=None, clock=time.monotonic, sleep=time.sleep):
        self.settings = settings or AuditSettings()
        self.http = http if http is not None else build_http_session(self.settings)
        self.resolver = resolver or socket.gethostbyname
        self.probe_transport = probe_transport
        self.dns_cache: dict[str, str] = {}
        self.fetch_cache: dict[str, PageFetchResult] = {}
        self.known_broken: set[str] = set()
        self.network_fetches = 0
        self._host_slots: dict[str, float] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep

    def close(self):
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # -- availability -------------------------------------------------

    def check_domain(self, url: str) -> DomainCheck:
        hostname = (urlsplit(url).hostname or "").lower()
        with self._lock:
            cached = self.dns_cache.get(hostname)
        if cached:
            return DomainCheck(hostname=hostname, available=True, address=cached)
        try:
            address = self.resolver(hostname)
        except (OSError, UnicodeError) as e:
            logging.warning(f"DNS lookup failed for {hostname}: {e}")
            return DomainCheck(hostname=hostname, available=False,
                               error_detail=f"Domain '{hostname}' could not be resolved: {e}")
        with self._lock:
            self.dns_cache[hostname] = address
        return DomainCheck(hostname=hostname, available=True, address=address)

    # -- fetching -----------------------------------------------------

    def fetch_page(self, url: str) -> PageFetchResult:
        """Availability check followed by a (cached) fetch. DNS failures are never cached."""
        url = normalize_url(url)
        domain = self.check_domain(url)
        if not domain.available:
            return PageFetchResult(url=url, final_url=url, status=FetchStatus.DNS_ERROR,
                                   error=domain.error_detail)
        return self.fetch(url)

    def fetch(self, url: str) -> PageFetchResult:
        key = normalize_url(url)
        with self._lock:
            cached = self.fetch_cache.get(key)
        if cached is not None:
            logging.info(f"Serving {key} from session cache")
            return cached
        result = self._fetch_from_network(key)
        with self._lock:
            # another worker may have fetched the same URL meanwhile
            return self.fetch_cache.setdefault(key, result)

    def _wait_for_slot(self, host: str):
        """Reserves the next request slot for `host`, at least crawl_delay after the previous one."""
        delay = self.settings.crawl_delay
        if delay <= 0:
            return
        with self._lock:
            now = self._clock()
            slot = max(now, self._host_slots.get(host, now))
            self._host_slots[host] = slot + delay
        if (wait := slot - now) > 0:
            self._sleep(wait)

    def _fetch_from_network(self, url: str) -> PageFetchResult:
        """
        Follows redirects one hop at a time so that fetch_timeout bounds the whole
        request, redirect chain and body included.
        """
        self._wait_for_slot(urlsplit(url).hostname or "")
        with self._lock:
            self.network_fetches += 1
        started = self._clock()
        deadline = started + self.settings.fetch_timeout
        timed_out = f"Request timed out after {self.settings.fetch_timeout:g}s"
        logging.info(f"Fetching {url}")

        current = url
        for _ in range(self.settings.max_redirects + 1):
            remaining = deadline - self._clock()
            if remaining <= 0:
                return self._network_error(url, started, timed_out, final_url=current)
            try:
                response = self.http.get(current, timeout=remaining, stream=True,
                                         verify=False, allow_redirects=False)
            except exceptions.Timeout:
                return self._network_error(url, started, timed_out, final_url=current)
            except exceptions.RequestException as e:
                return self._network_error(url, started, f"Network error: {e}", final_url=current)

            location = (response.headers.get("location") or "").strip()
            if response.status_code in REDIRECT_STATUS_CODES and location:
                response.close()
                try:
                    current, _ = urldefrag(urljoin(current, location))
                except ValueError:
                    return self._network_error(url, started, f"Invalid redirect target '{location}'", final_url=current)
                logging.info(f"{url} redirects to {current}")
                continue
            try:
                return self._read_response(url, response, started)
            finally:
                response.close()

        return self._network_error(url, started, f"Too many redirects (more than {self.settings.max_redirects})",
                                   final_url=current)

    def _network_error(self, url: str, started: float, message: str, status_code: int | None = None,
                       final_url: str | None = None, headers: dict | None = None) -> PageFetchResult:
        logging.warning(f"Fetch of {url} failed: {message}")
        return PageFetchResult(url=url, final_url=final_url or url, status=FetchStatus.NETWORK_ERROR,
                               status_code=status_code, headers=headers or {},
                               load_time_ms=(self._clock() - started) * 1000, error=message)

    def _read_response(self, url: str, response, started: float) -> PageFetchResult:
        headers = {k.lower(): v for k, v in response.headers.items()}
        final_url = response.url or url
        status_code = response.status_code
        content_type = headers.get("content-type", "")
        elapsed_ms = lambda: (self._clock() - started) * 1000

        if status_code >= 500:
            message = describe_status(status_code)
            logging.warning(f"Fetch of {url} returned {status_code}: {message}")
            return PageFetchResult(url=url, final_url=final_url, status=FetchStatus.HTTP_ERROR,
                                   status_code=status_code, headers=headers, load_time_ms=elapsed_ms(),
                                   content_type=content_type, error=message)

        mime = content_type.split(";", 1)[0].strip().lower()
        if mime not in HTML_CONTENT_TYPES:
            return PageFetchResult(url=url, final_url=final_url, status=FetchStatus.NON_HTML,
                                   status_code=status_code, headers=headers, load_time_ms=elapsed_ms(),
                                   content_type=content_type,
                                   error=f"Content type '{mime or 'unknown'}' is not HTML")

        max_size = self.settings.max_content_size
        declared = headers.get("content-length", "").strip()
        if declared.isdigit() and int(declared) > max_size:
            return self._network_error(url, started, f"Content too large ({declared} bytes, limit {max_size})",
                                       status_code, final_url, headers)

        deadline = started + self.settings.fetch_timeout
        body = bytearray()
        try:
            for chunk in response.iter_content(chunk_size=64 * 1024):
                if not chunk:
                    continue
                body.extend(chunk)
                if len(body) > max_size:
                    return self._network_error(url, started, f"Content too large (over {max_size} bytes)",
                                               status_code, final_url, headers)
                if self._clock() > deadline:
                    return self._network_error(url, started,
                                               f"Request timed out after {self.settings.fetch_timeout:g}s",
                                               status_code, final_url, headers)
        except exceptions.RequestException as e:
            return self._network_error(url, started, f"Network error while reading body: {e}",
                                       status_code, final_url, headers)

        return PageFetchResult(url=url, final_url=final_url, status=FetchStatus.OK, status_code=status_code,
                               html=decode_body(bytes(body), content_type), headers=headers,
                               load_time_ms=elapsed_ms(), byte_size=len(body), content_type=content_type)


def decode_body(body: bytes, content_type: str) -> str:
    charset = "utf-8"
    if match := _CHARSET.search(content_type or ""):
        charset = match.group(1)
    elif match := _CHARSET.search(body[:2048].decode("ascii", errors="ignore")):
        charset = match.group(1)
    try:
        return body.decode(charset, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


# ---------------------------------------------------------------- extraction

def _meta_content(soup: BeautifulSoup, name: str) -> str | None:
    tag = soup.find("meta", attrs={"name": lambda v: v and v.strip().lower() == name})
    if tag is None or tag.get("content") is None:
        return None
    return tag["content"].strip()


def extract_meta(soup: BeautifulSoup) -> MetaTags:
    meta = MetaTags(
        description=_meta_content(soup, "description"),
        robots=_meta_content(soup, "robots"),
        googlebot=_meta_content(soup, "googlebot"),
        viewport=_meta_content(soup, "viewport"),
        author=_meta_content(soup, "author"),
    )
    if canonical := soup.find("link", rel=lambda v: v and v.lower() == "canonical"):
        meta.canonical = (canonical.get("href") or "").strip() or None

    for tag in soup.find_all("meta", attrs={"property": True}):
        prop = tag.get("property", "").strip()
        if prop.lower().startswith("og:") and len(prop) > 3:
            meta.og[prop[3:]] = tag.get("content", "")
    for tag in soup.find_all("meta"):
        key = tag.get("name") or tag.get("property") or ""
        if key.lower().startswith("twitter:") and len(key) > 8:
            meta.twitter[key[8:]] = tag.get("content", "")

    if not meta.description and meta.og.get("description"):
        meta.description = meta.og["description"].strip()
    return meta


def extract_headings(soup: BeautifulSoup) -> Headings:
    levels = {}
    for level in range(1, 7):
        texts = [h.get_text(" ", strip=True) for h in soup.find_all(f"h{level}")]
        levels[f"h{level}"] = [t for t in texts if t]
    return Headings(**levels)


def has_proper_heading_structure(soup: BeautifulSoup) -> bool:
    """True when an <h2> appears after an <h1> in document order."""
    seen_h1 = False
    for heading in soup.find_all(["h1", "h2"]):
        if heading.name == "h1":
            seen_h1 = True
        elif seen_h1:
            return True
    return False


def extract_links(soup: BeautifulSoup, page_url: str) -> PageLinks:
    page_host = (urlsplit(page_url).hostname or "").lower()
    links = PageLinks()
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href or href.startswith("#") or href.lower().startswith(SKIPPED_HREF_PREFIXES):
            continue
        anchor = a.get_text(" ", strip=True)
        try:
            absolute, _ = urldefrag(urljoin(page_url, href))
            parts = urlsplit(absolute)
            _ = parts.port
        except ValueError:
            links.internal.append(InternalLink(url=href, anchor_text=anchor, broken=True))
            continue
        if parts.scheme not in ("http", "https") or not parts.hostname:
            continue
        if parts.hostname.lower() == page_host:
            links.internal.append(InternalLink(url=absolute, anchor_text=anchor))
        else:
            links.external.append(ExternalLink(url=absolute, anchor_text=anchor))
    return links


def extract_images(soup: BeautifulSoup, page_url: str) -> list[ImageInfo]:
    images = []
    for img in soup.find_all("img"):
        src = (img.get("src") or img.get("data-src") or "").strip()
        try:
            url = urljoin(page_url, src) if src else ""
        except ValueError:
            url = src
        images.append(ImageInfo(
            url=url,
            alt=img.get("alt"),
            has_srcset=img.has_attr("srcset") or img.find_parent("picture") is not None,
            lazy=(img.get("loading") or "").lower() == "lazy",
            width=img.get("width"),
            height=img.get("height"),
        ))
    return images


def _collect_ld_types(data) -> list:
    """@type names in document order, walking nested arrays and @graph without recursion."""
    found, stack = [], [data]
    while stack:
        node = stack.pop()
        if isinstance(node, list):
            stack.extend(reversed(node))
        elif isinstance(node, dict):
            types = node.get("@type")
            for t in (types if isinstance(types, list) else [types]):
                if isinstance(t, str) and t and t not in found:
                    found.append(t)
            if "@graph" in node:
                stack.append(node["@graph"])
    return found


def _type_name(value: str) -> str:
    value = value.strip().rstrip("/")
    value = value.rsplit("/", 1)[-1].rsplit("#", 1)[-1]
    return value.split(":", 1)[-1]


def extract_schema(soup: BeautifulSoup) -> list[SchemaItem]:
    """
    JSON-LD blocks first (including @graph and top-level arrays). Microdata
    (itemtype) and RDFa (typeof) are only consulted when JSON-LD yields no types.
    """
    items, seen = [], []
    for script in soup.find_all("script", attrs={"type": lambda v: v and "ld+json" in v.lower()}):
        raw = (script.string or script.get_text() or "").strip()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except (ValueError, RecursionError) as e:
            logging.warning(f"Skipping unreadable JSON-LD block: {e}")
            continue
        types = [t for t in _collect_ld_types(data) if t not in seen]
        seen.extend(types)
        items.append(SchemaItem(types=types, raw_json=raw))

    if seen:
        return items

    for attribute in ("itemtype", "typeof"):
        types = []
        for tag in soup.find_all(attrs={attribute: True}):
            for value in (tag.get(attribute) or "").split():
                name = _type_name(value)
                if name and name not in seen and name not in types:
                    types.append(name)
        if types:
            seen.extend(types)
            items.append(SchemaItem(types=types))
    return items


def count_resources(soup: BeautifulSoup) -> int:
    count = len(soup.find_all(["img", "script", "iframe"], src=True))
    count += len(soup.find_all("link", rel=lambda v: v and v.lower() in ("stylesheet", "preload", "icon")))
    return count


def extract_content(soup: BeautifulSoup) -> PageContent:
    """Strips non-content tags in place, so it must run after every other extractor."""
    for tag in soup.find_all(STRIPPED_CONTENT_TAGS):
        tag.decompose()
    root = soup.body or soup
    text = " ".join(root.get_text(" ", strip=True).split())
    paragraphs = [p.get_text(" ", strip=True) for p in root.find_all("p")]
    return PageContent(text=text, word_count=len(text.split()), paragraphs=[p for p in paragraphs if p])


def failed_page(fetch: PageFetchResult) -> ExtractedPage:
    return ExtractedPage(
        url=fetch.final_url,
        status_code=fetch.status_code,
        error=fetch.error or f"Fetch failed ({fetch.status.value})",
        performance=PerformanceInfo(load_time_ms=fetch.load_time_ms, byte_size=fetch.byte_size),
        security=SecurityFlags(has_https=fetch.has_https),
    )


def extract_page(fetch: PageFetchResult) -> ExtractedPage:
    """
    Turns one fetch result into structured page signals. Pure: the same fetch
    always gives the same page and nothing outside is touched.

    Args:
        fetch: result of AuditSession.fetch / fetch_page.

    Returns:
        ExtractedPage, with `error` set and empty signals when the fetch was not ok.
    """
    if not fetch.ok or fetch.html is None:
        return failed_page(fetch)

    page_url = fetch.final_url
    soup = BeautifulSoup(fetch.html, "lxml")

    titles = [t for t in soup.find_all("title") if t.find_parent("svg") is None]
    title = titles[0].get_text(" ", strip=True) if titles else ""
    descriptions = soup.find_all("meta", attrs={"name": lambda v: v and v.strip().lower() == "description"})

    meta = extract_meta(soup)
    headings = extract_headings(soup)
    links = extract_links(soup, page_url)
    images = extract_images(soup, page_url)
    schema_items = extract_schema(soup)

    mixed = mixed_content_test(is_https=fetch.has_https, soup=soup)
    headers_check = security_headers_test(fetch.headers)
    security = SecurityFlags(
        has_https=fetch.has_https,
        has_mixed_content=mixed["has_mixed_content"],
        has_security_headers=headers_check["has_security_headers"],
        insecure_urls=mixed["insecure_urls"],
        security_headers=headers_check["found"],
    )

    missing_alt = sum(1 for img in images if not (img.alt or "").strip())
    has_aria = any(soup.find(attrs={attr: True}) is not None for attr in ARIA_ATTRIBUTES)
    accessibility = AccessibilityFlags(
        missing_alt_text=missing_alt,
        has_aria_attributes=has_aria,
        has_proper_heading_structure=has_proper_heading_structure(soup),
        has_accessible_elements=has_aria or missing_alt == 0,
    )

    viewport = viewport_test(soup)
    responsive_images = responsive_image_test(soup)
    responsive = ResponsiveSignals(
        has_media_queries=media_query_responsive_test(soup)["has_media_queries"],
        responsive_images=responsive_images["responsive_images"],
        non_responsive_images=responsive_images["non_responsive_images"],
        lazy_loaded_images=responsive_images["lazy_loaded_images"],
        small_text_count=viewport["small_text_count"],
        zoom_disabled=viewport["zoom_disabled"],
        initial_scale=viewport["initial_scale"],
        viewport_issues=viewport["issues"],
    )
    refresh = meta_refresh_test(soup)
    resource_count = count_resources(soup)

    content = extract_content(soup)

    directives = f"{meta.robots or ''},{meta.googlebot or ''}".lower()
    seo_issues = SeoIssues(
        noindex="noindex" in directives,
        broken_links=sum(1 for link in links.internal if link.broken),
        missing_alt_text=missing_alt,
        duplicate_meta_tags=len(titles) > 1 or len(descriptions) > 1,
        thin_content=content.word_count < THIN_CONTENT_WORDS,
        missing_headings=not headings.h1,
        meta_refresh=refresh["meta_refresh_found"],
        meta_refresh_targets=refresh["redirect_targets"],
        robots=meta.robots,
    )

    return ExtractedPage(
        url=page_url,
        status_code=fetch.status_code,
        title=title,
        meta=meta,
        headings=headings,
        links=links,
        images=images,
        schema_items=schema_items,
        content=content,
        mobile_compatible=viewport["has_viewport"] and viewport["device_width"],
        responsive=responsive,
        performance=PerformanceInfo(load_time_ms=fetch.load_time_ms, byte_size=fetch.byte_size,
                                    resource_count=resource_count),
        security=security,
        accessibility=accessibility,
        seo_issues=seo_issues,
    )


FETCH_FAILURES = {
    FetchStatus.DNS_ERROR: DnsUnavailableError,
    FetchStatus.NETWORK_ERROR: NetworkError,
    FetchStatus.NON_HTML: NonHtmlContentError,
}


def raise_for_fetch(fetch: PageFetchResult):
    """Raises the SeoAuditError matching a failed fetch; does nothing for an ok one."""
    if fetch.ok:
        return
    message = fetch.error or "Page could not be fetched"
    if fetch.status == FetchStatus.HTTP_ERROR:
        raise HttpError(message, fetch.status_code, url=fetch.url)
    raise FETCH_FAILURES.get(fetch.status, NetworkError)(message, url=fetch.url)


def analyzable_page(fetch: PageFetchResult) -> ExtractedPage:
    """
    extract_page for callers that stop on failure. A failed fetch raises its
    SeoAuditError, and HTML that breaks an extractor raises PageExtractionError.
    """
    raise_for_fetch(fetch)
    try:
        return extract_page(fetch)
    except Exception as e:
        logging.exception(f"Could not extract signals from {fetch.final_url}")
        raise PageExtractionError(f"Page content could not be processed: {e}", url=fetch.url) from e


# ------------------------------------------------------------ verification

async def verify_internal_links(page: ExtractedPage, session: AuditSession) -> int:
    """
    Probes the first few internal links of `page` with HEAD requests and marks
    the ones that fail (status >= 400 or transport error) as broken, in place.

    Returns:
        The number of probes actually issued.
    """
    settings = session.settings
    sample = page.links.internal[:settings.max_links_to_verify]
    page_host = (urlsplit(page.url).hostname or "").lower()
    probes = 0

    async with probe_client(settings.link_check_timeout, settings.link_check_max_redirects,
                            settings.user_agent, session.probe_transport) as client:
        for link in sample:
            if link.broken:
                continue
            if link.url in session.known_broken:
                link.broken = True
                continue
            try:
                target_host = (urlsplit(link.url).hostname or "").lower()
            except ValueError:
                link.broken = True
                continue
            if target_host != page_host:
                continue
            status = await head_status(client, link.url)
            probes += 1
            if status is None or status >= 400:
                link.broken = True
                session.known_broken.add(link.url)
            await asyncio.sleep(settings.link_check_delay)

    page.seo_issues.broken_links = page.broken_link_count
    return probes
