import pytest
from fastapi.testclient import TestClient

import main
from analyzer import error_result
from errors import ErrorKind
from models import ExtractedPage, SiteCrawlResult


@pytest.fixture
def client(monkeypatch):
    for name in ("SEO_AUDIT_MAX_PAGES", "SEO_AUDIT_FETCH_TIMEOUT", "SEO_AUDIT_CRAWL_CONCURRENCY"):
        monkeypatch.delenv(name, raising=False)
    return TestClient(main.app)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "POST /analyze" in response.json()["message"]


def test_analyze_returns_wire_result(client, monkeypatch):
    seen = {}

    def fake_analyze(url, options, settings):
        seen["url"], seen["options"] = url, options
        return error_result(url, "Domain could not be resolved", ErrorKind.DNS_UNAVAILABLE)

    monkeypatch.setattr(main, "analyze", fake_analyze)
    response = client.post("/analyze", json={"url": "example.com", "target_keyword": "plumbing"})

    assert response.status_code == 200
    body = response.json()
    assert body["overallScore"] == {"score": 50, "category": "needs-work"}
    assert body["errorKind"] == "DnsUnavailable"
    assert "eatAnalysis" in body
    assert seen["url"] == "example.com"
    assert seen["options"].forced_primary_keyword == "plumbing"
    assert seen["options"].verify_links


def test_crawl_passes_page_budget(client, monkeypatch):
    seen = {}

    def fake_analyze_site(url, settings, cancel_event, verify_links):
        seen["settings"] = settings
        return SiteCrawlResult(homepage=ExtractedPage(url="https://example.com/"), reached_page_budget=True)

    monkeypatch.setattr(main, "analyze_site", fake_analyze_site)
    response = client.post("/crawl", json={"url": "https://example.com", "max_pages": 7})

    assert response.status_code == 200
    body = response.json()
    assert body["homepage"]["url"] == "https://example.com/"
    assert body["otherPages"] == []
    assert body["reachedPageBudget"] is True
    assert seen["settings"].max_pages == 7


def test_crawl_rejects_out_of_range_budget(client):
    assert client.post("/crawl", json={"url": "https://example.com", "max_pages": 0}).status_code == 422


def test_invalid_configuration_is_a_server_error(client, monkeypatch):
    monkeypatch.setenv("SEO_AUDIT_CRAWL_CONCURRENCY", "0")
    response = client.post("/analyze", json={"url": "https://example.com"})
    assert response.status_code == 500
    assert response.json()["detail"] == "Server audit configuration is invalid."


def test_competitors(client, monkeypatch):
    monkeypatch.setattr(main, "find_competitor_urls", lambda keyword, location, exclude_url: {
        "keyword": keyword, "urls": ["https://a.com"], "source": "supplier", "error": None,
    })
    response = client.post("/competitors", json={"keyword": "plumbing", "location": "Denver"})
    assert response.status_code == 200
    assert response.json()["urls"] == ["https://a.com"]
