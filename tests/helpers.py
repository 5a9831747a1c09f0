import httpx
from requests.structures import CaseInsensitiveDict

from config import AuditSettings
from models import FetchStatus, PageFetchResult
from scraper import AuditSession, extract_page

HTML_HEADERS = {"Content-Type": "text/html; charset=utf-8"}


class FakeResponse:
    def __init__(self, url, status_code=200, body=b"", headers=None):
        self.url = url
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(HTML_HEADERS if headers is None else headers)
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeHttp:
    """Stands in for requests.Session: maps URL -> FakeResponse, Exception or a callable."""

    def __init__(self, pages=None, default=None):
        self.pages = pages or {}
        self.default = default
        self.calls = []
        self.timeouts = []
        self.closed = False

    def get(self, url, **kwargs):
        self.calls.append(url)
        self.timeouts.append(kwargs.get("timeout"))
        item = self.pages.get(url, self.default)
        if callable(item) and not isinstance(item, FakeResponse):
            item = item(url)
        if isinstance(item, Exception):
            raise item
        if item is None:
            return FakeResponse(url, 404, "<html><body><h1>Not found</h1></body></html>")
        return item

    def close(self):
        self.closed = True


def quiet_settings(**overrides) -> AuditSettings:
    values = {"crawl_delay": 0, "link_check_delay": 0}
    values.update(overrides)
    return AuditSettings(**values)


def probe_transport(statuses=None, calls=None):
    """httpx.MockTransport answering HEAD probes from a path -> status map (default 200)."""
    statuses = statuses or {}

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(str(request.url))
        return httpx.Response(statuses.get(request.url.path, 200))

    return httpx.MockTransport(handler)


def make_session(pages=None, default=None, resolver=None, statuses=None, calls=None, **settings) -> AuditSession:
    return AuditSession(
        settings=quiet_settings(**settings),
        http=FakeHttp(pages, default),
        resolver=resolver or (lambda host: "93.184.216.34"),
        probe_transport=probe_transport(statuses, calls),
    )


def fetch_result(html, url="https://example.com/", headers=None, status_code=200, load_time_ms=120.0):
    return PageFetchResult(
        url=url,
        final_url=url,
        status=FetchStatus.OK,
        status_code=status_code,
        html=html,
        headers={k.lower(): v for k, v in (headers or {}).items()},
        load_time_ms=load_time_ms,
        byte_size=len(html.encode("utf-8")),
        content_type="text/html",
    )


def page_from_html(html, url="https://example.com/", headers=None, **kwargs):
    return extract_page(fetch_result(html, url, headers, **kwargs))


def words(n, word="plumbing"):
    filler = ["water", "pipes", "repair", "fast", "local", "team", "service", "quality", "home", "leak"]
    return " ".join(word if i % 25 == 0 else filler[i % len(filler)] for i in range(n))


def plumbing_page(word_count=650):
    description = ("Trusted plumbing services for homes and businesses. Fast repairs, fair prices "
                   "and licensed plumbers available every day.")
    assert len(description) == 120
    paragraphs = "".join(f"<p>{words(word_count // 5)}</p>" for _ in range(5))
    return f"""<html><head>
<title>Best Plumbing Services</title>
<meta name="description" content="{description}">
<meta name="viewport" content="width=device-width, initial-scale=1">
</head><body>
<h1>Plumbing Services You Can Trust</h1>
<h2>Why choose us</h2>
{paragraphs}
</body></html>"""
