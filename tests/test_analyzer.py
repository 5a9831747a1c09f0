import json
import socket

import analyzer
import scraper
from analyzer import aggregate, analyze, export_to_json, run_factors, score_page
from errors import ErrorKind
from models import AnalysisOptions, ContentAnalysis, EatAnalysis, SeoScore
from requests import exceptions

from helpers import FakeHttp, FakeResponse, page_from_html, plumbing_page, probe_transport, quiet_settings

URL = "https://example.com/"


def run(url=URL, pages=None, options=None, resolver=None, **settings):
    return analyze(
        url,
        options,
        settings=quiet_settings(**settings),
        http=FakeHttp(pages),
        resolver=resolver or (lambda host: "10.0.0.1"),
        probe_transport=probe_transport(),
    )


def neutral_factors():
    return {name: result_type.as_fallback("n/a") for name, (result_type, _) in analyzer.FACTOR_SCORERS.items()}


def test_aggregate_is_weighted_mean_of_usable_factors():
    factors = neutral_factors()
    factors["content"] = ContentAnalysis(overall_score=SeoScore(score=80))
    factors["eat"] = EatAnalysis(overall_score=SeoScore(score=40))
    assert aggregate(factors) == SeoScore(score=65)


def test_aggregate_without_usable_factors_is_neutral():
    assert aggregate(neutral_factors()).score == 50


def test_failing_factor_is_isolated(monkeypatch):
    def boom(page, keyword=None):
        raise RuntimeError("textstat exploded")

    monkeypatch.setitem(analyzer.FACTOR_SCORERS, "content", (ContentAnalysis, boom))
    factors = run_factors(page_from_html(plumbing_page()))

    assert factors["content"].fallback
    assert factors["content"].score == 50
    assert "textstat exploded" in factors["content"].fallback_reason
    assert not factors["metaTags"].fallback
    assert not factors["keyword"].fallback


def test_factor_returning_wrong_type_falls_back(monkeypatch):
    monkeypatch.setitem(analyzer.FACTOR_SCORERS, "eat", (EatAnalysis, lambda page, keyword=None: {"score": 99}))
    assert run_factors(page_from_html(plumbing_page()))["eat"].fallback


def test_full_analysis_of_a_good_page():
    result = run(pages={URL: FakeResponse(URL, 200, plumbing_page())})

    assert result.error is None
    assert result.meta_tags_analysis.score > 70
    assert result.content_analysis.score > 70
    assert result.keyword_analysis.primary_keyword == "plumbing"
    assert "Secure HTTPS implementation" in result.strengths
    assert 0 <= result.overall_score.score <= 100
    assert len(result.factors) == 10
    assert not any(factor.fallback for factor in result.factors)


def test_forced_keyword_reaches_keyword_analysis():
    options = AnalysisOptions(forced_primary_keyword="drain cleaning")
    result = run(pages={URL: FakeResponse(URL, 200, plumbing_page())}, options=options)
    assert result.keyword_analysis.primary_keyword == "drain cleaning"
    assert result.keyword_analysis.forced


def test_lists_are_unique_and_capped():
    result = run(url="http://example.com/",
                 pages={"http://example.com/": FakeResponse("http://example.com/", 200, "<html><body></body></html>")})
    assert len(result.strengths) <= analyzer.MAX_STRENGTHS
    assert len(result.weaknesses) == analyzer.MAX_WEAKNESSES
    assert len(result.recommendations) == analyzer.MAX_RECOMMENDATIONS
    for items in (result.strengths, result.weaknesses, result.recommendations):
        assert len(items) == len(set(items))
    assert result.weaknesses[0] == "Page not served over secure HTTPS"


def test_dns_failure_gives_neutral_error_result():
    def resolver(host):
        raise socket.gaierror("Name or service not known")

    result = run(url="https://no-such-site.example", resolver=resolver)

    assert result.error_kind == ErrorKind.DNS_UNAVAILABLE
    assert "no-such-site.example" in result.error
    assert result.overall_score == SeoScore(score=50)
    for factor in result.factors:
        assert factor.fallback
        assert factor.overall_score.score == 50
        assert factor.overall_score.category == "needs-work"


def test_server_error_is_reported():
    result = run(pages={URL: FakeResponse(URL, 502, "bad gateway")})
    assert result.error_kind == ErrorKind.HTTP_ERROR
    assert "Bad Gateway" in result.error


def test_non_html_and_network_failures_carry_their_kind():
    pdf = run(pages={URL: FakeResponse(URL, 200, b"%PDF-1.4", {"Content-Type": "application/pdf"})})
    offline = run(pages={URL: exceptions.ConnectionError("connection refused")})
    assert pdf.error_kind == ErrorKind.NON_HTML_CONTENT
    assert offline.error_kind == ErrorKind.NETWORK_ERROR
    assert "connection refused" in offline.error


def test_deeply_nested_json_ld_does_not_break_analysis():
    nested = "[" * 5000 + "]" * 5000
    html = (f"<html><head><script type='application/ld+json'>{nested}</script></head>"
            "<body><h1>Hi</h1></body></html>")
    result = run(pages={URL: FakeResponse(URL, 200, html)})
    assert result.error is None
    assert not result.schema_markup_analysis.fallback


def test_extraction_failure_is_reported_not_raised(monkeypatch):
    def broken_extract(fetch):
        raise RecursionError("maximum recursion depth exceeded")

    monkeypatch.setattr(scraper, "extract_page", broken_extract)
    result = run(pages={URL: FakeResponse(URL, 200, "<html><body><p>x</p></body></html>")})
    assert result.error_kind == ErrorKind.EXTRACTION_FAILURE
    assert "recursion" in result.error
    assert result.overall_score == SeoScore(score=50)


def test_meta_refresh_weakness_names_its_target():
    html = ('<html><head><meta http-equiv="refresh" content="5; url=https://example.com/new"></head>'
            "<body></body></html>")
    result = run(pages={URL: FakeResponse(URL, 200, html)})
    assert "Page uses a meta refresh redirect to https://example.com/new" in result.weaknesses


def test_invalid_url_is_reported_not_raised():
    result = run(url="ftp://example.com/file")
    assert result.error_kind == ErrorKind.INVALID_URL
    assert result.url == "ftp://example.com/file"


def test_broken_links_are_verified_during_analysis():
    html = '<html><body><h1>Home</h1><a href="/missing">Missing page</a></body></html>'
    result = analyze(
        URL,
        settings=quiet_settings(),
        http=FakeHttp({URL: FakeResponse(URL, 200, html)}),
        resolver=lambda host: "10.0.0.1",
        probe_transport=probe_transport({"/missing": 404}),
    )
    assert result.internal_links_analysis.broken_links == 1
    assert result.internal_links_analysis.link_count == 1


def test_score_page_is_deterministic():
    page = page_from_html(plumbing_page())
    first = score_page(page, timestamp="2024-01-01T00:00:00+00:00")
    second = score_page(page, timestamp="2024-01-01T00:00:00+00:00")
    assert first == second


def test_export_to_json_writes_wire_shape(tmp_path):
    result = score_page(page_from_html(plumbing_page()))
    target = tmp_path / "report.json"
    export_to_json(result, str(target))
    data = json.loads(target.read_text(encoding="utf-8"))
    assert data["url"] == URL
    assert data["overallScore"]["score"] == result.overall_score.score
    assert "keywordAnalysis" in data
