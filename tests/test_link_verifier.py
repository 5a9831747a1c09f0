import asyncio
import httpx

from scraper import verify_internal_links
from helpers import make_session, page_from_html


def linked_page(*paths):
    anchors = "".join(f'<a href="{p}">Link {p}</a>' for p in paths)
    return page_from_html(f"<html><body><p>Links</p>{anchors}</body></html>")


def test_only_the_first_links_are_probed():
    calls = []
    session = make_session(statuses={"/b": 404}, calls=calls)
    page = linked_page("/a", "/b", "/c", "/d", "/e", "/f", "/g")

    probes = asyncio.run(verify_internal_links(page, session))

    assert probes == 5
    assert calls == [f"https://example.com/{p}" for p in "abcde"]
    assert [link.broken for link in page.links.internal] == [False, True, False, False, False, False, False]
    assert page.seo_issues.broken_links == 1
    assert session.known_broken == {"https://example.com/b"}


def test_probe_budget_is_configurable():
    calls = []
    session = make_session(calls=calls, max_links_to_verify=2)
    asyncio.run(verify_internal_links(linked_page("/a", "/b", "/c"), session))
    assert len(calls) == 2


def test_known_broken_links_are_not_probed_again():
    calls = []
    session = make_session(statuses={"/gone": 410}, calls=calls)
    asyncio.run(verify_internal_links(linked_page("/gone"), session))
    second = linked_page("/gone", "/ok")

    probes = asyncio.run(verify_internal_links(second, session))

    assert probes == 1
    assert calls == ["https://example.com/gone", "https://example.com/ok"]
    assert second.links.internal[0].broken
    assert second.seo_issues.broken_links == 1


def test_transport_errors_mark_links_broken():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    session = make_session()
    session.probe_transport = httpx.MockTransport(handler)
    page = linked_page("/down")

    asyncio.run(verify_internal_links(page, session))

    assert page.links.internal[0].broken
    assert page.broken_link_count == 1


def test_page_without_internal_links_issues_no_probes():
    calls = []
    session = make_session(calls=calls)
    page = page_from_html('<html><body><a href="https://other.org/">Elsewhere</a></body></html>')
    assert asyncio.run(verify_internal_links(page, session)) == 0
    assert calls == []
