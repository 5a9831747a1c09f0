from models import ExtractedPage, PageSpeedAnalysis, SeoScore

# (upper bound, score) pairs; anything above the last bound scores 10
LCP_TIERS = [(2500, 100), (3000, 90), (3500, 80), (4000, 70), (5000, 50), (6000, 30)]
FID_TIERS = [(100, 100), (150, 90), (200, 80), (300, 70), (400, 50), (500, 30)]
CLS_TIERS = [(0.1, 100), (0.15, 90), (0.2, 80), (0.25, 70), (0.3, 50), (0.4, 30)]
TTFB_TIERS = [(300, 100), (450, 90), (600, 80), (750, 70), (1000, 50), (1500, 30)]

METRIC_WEIGHTS = {"lcp": 0.4, "fid": 0.3, "cls": 0.2, "ttfb": 0.1}


def tier_score(value: float, tiers: list) -> int:
    for bound, score in tiers:
        if value <= bound:
            return score
    return 10


def estimate_metrics(page: ExtractedPage) -> dict:
    """
    Deterministic Core Web Vitals estimates from the static page. TTFB is the
    measured load time of the fetch; the others are derived from page weight.
    """
    images = len(page.images)
    lcp = 2000 + images * 200 + (page.performance.byte_size / 100000) * 500

    fid = 70
    if images > 10 or len(page.links.external) > 20 or page.content.word_count > 3000:
        fid += 100

    cls = 0.05
    if images:
        cls += 0.03
    if images > 5:
        cls += 0.07
    if page.meta.viewport is None:
        cls += 0.05

    return {"lcp": lcp, "fid": fid, "cls": round(cls, 3), "ttfb": page.performance.load_time_ms}


def page_speed_test(page: ExtractedPage, keyword: str | None = None) -> PageSpeedAnalysis:
    metrics = estimate_metrics(page)
    scores = {
        "lcp": tier_score(metrics["lcp"], LCP_TIERS),
        "fid": tier_score(metrics["fid"], FID_TIERS),
        "cls": tier_score(metrics["cls"], CLS_TIERS),
        "ttfb": tier_score(metrics["ttfb"], TTFB_TIERS),
    }
    overall = sum(scores[name] * weight for name, weight in METRIC_WEIGHTS.items())

    analysis = PageSpeedAnalysis(
        lcp_ms=round(metrics["lcp"]),
        fid_ms=metrics["fid"],
        cls=metrics["cls"],
        ttfb_ms=round(metrics["ttfb"]),
        lcp_score=scores["lcp"],
        fid_score=scores["fid"],
        cls_score=scores["cls"],
        ttfb_score=scores["ttfb"],
        byte_size=page.performance.byte_size,
        resource_count=page.performance.resource_count,
        overall_score=SeoScore(score=overall),
    )
    if scores["ttfb"] < 70:
        analysis.recommendations.append(
            f"Reduce server response time (measured {analysis.ttfb_ms:.0f}ms, aim for under 600ms)")
    return analysis
