import logging
from typing import Protocol
from urllib.parse import quote_plus, urlsplit
from bs4 import BeautifulSoup
from requests import Session, exceptions

from config import DEFAULT_USER_AGENT

MAX_COMPETITORS = 5
EXCLUDED_HOSTS = ("bing.com", "microsoft.com", "live.com", "google.com", "msn.com")

# (trigger words, fallback sites); the first list whose trigger appears in the keyword wins
INDUSTRY_FALLBACKS = [
    (("shop", "product", "buy", "store", "retail", "price"),
     ["amazon.com", "ebay.com", "etsy.com", "walmart.com", "shopify.com", "target.com"]),
    (("tech", "software", "app", "digital", "code", "program"),
     ["techcrunch.com", "wired.com", "theverge.com", "cnet.com", "github.com", "stackoverflow.com"]),
    (("news", "article", "blog", "media", "story", "report"),
     ["cnn.com", "bbc.com", "nytimes.com", "reuters.com", "washingtonpost.com", "medium.com"]),
    (("travel", "vacation", "hotel", "flight", "booking", "tourism"),
     ["expedia.com", "booking.com", "tripadvisor.com", "airbnb.com", "kayak.com", "hotels.com"]),
    (("health", "medical", "doctor", "wellness", "fitness", "diet"),
     ["webmd.com", "mayoclinic.org", "healthline.com", "cdc.gov", "medicalnewstoday.com", "nih.gov"]),
]
DEFAULT_FALLBACK = ["wikipedia.org", "reddit.com", "linkedin.com", "forbes.com", "entrepreneur.com", "businessinsider.com"]


class SupplierRateLimited(Exception):
    pass


class CandidateUrlSupplier(Protocol):
    def find_candidate_urls(self, keyword: str, location: str | None = None) -> list[str]:
        ...


class BingSearchSupplier:
    """Scrapes the organic results of a Bing search page."""

    def __init__(self, session: Session | None = None, timeout: float = 10, user_agent: str = DEFAULT_USER_AGENT):
        self.session = session or Session()
        self.session.headers.update({'User-Agent': user_agent, 'Accept-Language': 'en-US,en;q=0.9'})
        self.timeout = timeout

    def find_candidate_urls(self, keyword: str, location: str | None = None) -> list[str]:
        query = f"{keyword} {location}" if location else keyword
        response = self.session.get(f"https://www.bing.com/search?q={quote_plus(query)}", timeout=self.timeout)
        if response.status_code == 429:
            raise SupplierRateLimited("Bing is rate limiting search requests")
        response.raise_for_status()

        soup = BeautifulSoup(response.text, "lxml")
        urls = []
        for a in soup.select("li.b_algo h2 a[href]"):
            href = a["href"]
            if href.startswith("http") and href not in urls:
                urls.append(href)
        return urls


def host_of(url: str) -> str:
    host = (urlsplit(url if "://" in url else f"https://{url}").hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def fallback_competitors(keyword: str) -> list[str]:
    words = (keyword or "").lower()
    for triggers, sites in INDUSTRY_FALLBACKS:
        if any(trigger in words for trigger in triggers):
            return [f"https://{site}" for site in sites]
    return [f"https://{site}" for site in DEFAULT_FALLBACK]


def _filter(urls: list[str], exclude_url: str | None) -> list[str]:
    excluded = host_of(exclude_url) if exclude_url else None
    kept, hosts = [], set()
    for url in urls:
        host = host_of(url)
        if not host or host == excluded or host in hosts:
            continue
        if any(host == h or host.endswith("." + h) for h in EXCLUDED_HOSTS):
            continue
        hosts.add(host)
        kept.append(url)
    return kept[:MAX_COMPETITORS]


def find_competitor_urls(keyword: str, location: str | None = None, exclude_url: str | None = None,
                         supplier: CandidateUrlSupplier | None = None) -> dict:
    """
    Competitor URLs for a keyword from `supplier`, falling back to a fixed
    industry list when the supplier fails, is rate-limited or finds nothing.

    Returns:
        dict: {"keyword", "urls", "source": "supplier" | "fallback", "error"}
    """
    supplier = supplier or BingSearchSupplier()
    error = None
    try:
        urls = _filter(supplier.find_candidate_urls(keyword, location), exclude_url)
        if urls:
            return {"keyword": keyword, "urls": urls, "source": "supplier", "error": None}
        error = "Supplier returned no usable results"
    except SupplierRateLimited as e:
        error = str(e)
    except exceptions.RequestException as e:
        error = f"Supplier request failed: {e}"
    except Exception as e:
        logging.exception(f"Competitor supplier failed for '{keyword}'")
        error = f"Supplier failed: {e}"
    logging.warning(f"Competitor lookup for '{keyword}' falling back to defaults: {error}")
    return {"keyword": keyword, "urls": _filter(fallback_competitors(keyword), exclude_url),
            "source": "fallback", "error": error}
