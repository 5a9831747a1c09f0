import os
import sys
import json
import pprint
import asyncio
import logging
from datetime import datetime, timezone
from urllib.parse import urlsplit
from fastapi.concurrency import run_in_threadpool

from config import AuditSettings
from crawler import crawl_site_sync
from errors import ErrorKind, FactorAnalysisFailure, InvalidUrlError, SeoAuditError
from models import (
    AnalysisOptions, AnalysisResult, ContentAnalysis, EatAnalysis, ExtractedPage, FactorAnalysis,
    FACTOR_FIELDS, ImageAnalysis, InternalLinksAnalysis, KeywordAnalysis, MetaTagsAnalysis,
    MobileAnalysis, PageSpeedAnalysis, SchemaMarkupAnalysis, SeoScore, SiteCrawlResult,
    UserEngagementAnalysis,
)
from scraper import AuditSession, analyzable_page, normalize_url, verify_internal_links
from Features.KeywordTest import extract_primary_keyword, keyword_test
from Features.MetaTagsTest import meta_tags_test
from Features.ContentTest import content_test
from Features.InternalLinksTest import internal_links_test
from Features.ImagesTest import images_test
from Features.SchemaMarkupTest import schema_markup_test
from Features.MobileTest import mobile_test
from Features.PageSpeedTest import page_speed_test
from Features.UserEngagementTest import user_engagement_test
from Features.AuthorityTest import authority_test

# factor name -> (result type, scorer)
FACTOR_SCORERS = {
    "keyword": (KeywordAnalysis, keyword_test),
    "metaTags": (MetaTagsAnalysis, meta_tags_test),
    "content": (ContentAnalysis, content_test),
    "internalLinks": (InternalLinksAnalysis, internal_links_test),
    "images": (ImageAnalysis, images_test),
    "schemaMarkup": (SchemaMarkupAnalysis, schema_markup_test),
    "mobile": (MobileAnalysis, mobile_test),
    "pageSpeed": (PageSpeedAnalysis, page_speed_test),
    "userEngagement": (UserEngagementAnalysis, user_engagement_test),
    "eat": (EatAnalysis, authority_test),
}

FACTOR_WEIGHTS = {
    "keyword": 1.5,
    "metaTags": 1.5,
    "content": 1.5,
    "internalLinks": 1.0,
    "images": 1.0,
    "schemaMarkup": 1.0,
    "mobile": 1.3,
    "pageSpeed": 1.3,
    "userEngagement": 1.0,
    "eat": 0.9,
}

MAX_STRENGTHS = 8
MAX_WEAKNESSES = 8
MAX_RECOMMENDATIONS = 15

GENERAL_RECOMMENDATIONS = [
    "Consider adding a table of contents for longer articles to improve navigation",
    "Include FAQ sections with schema markup to target more featured snippets",
    "Consider implementing canonical tags if you have similar content across multiple pages",
    "Add breadcrumb navigation to improve site structure and user experience",
    "Create unique meta descriptions for each page that include a call-to-action",
    "Add relevant multimedia content such as images, videos or infographics to increase engagement",
]


def unique_capped(items: list, cap: int) -> list:
    seen = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return seen[:cap]


def run_factors(page: ExtractedPage, forced_keyword: str | None = None) -> dict:
    """
    Runs every factor scorer against the page. A scorer that raises is replaced by
    its neutral fallback result, so one failure never affects the other factors.

    Returns:
        dict of factor name -> FactorAnalysis.
    """
    try:
        keyword = forced_keyword or extract_primary_keyword(page)
    except Exception:
        logging.exception("Primary keyword extraction failed; scoring without a keyword.")
        keyword = None

    results = {}
    for name, (result_type, scorer) in FACTOR_SCORERS.items():
        try:
            analysis = scorer(page, forced_keyword if name == "keyword" else keyword)
            if not isinstance(analysis, result_type):
                raise FactorAnalysisFailure(f"{name} scorer returned {type(analysis).__name__}", name)
        except Exception as e:
            failure = e if isinstance(e, FactorAnalysisFailure) else FactorAnalysisFailure(str(e), name)
            logging.exception(f"Factor '{name}' failed for {page.url}; using the neutral default.")
            analysis = result_type.as_fallback(f"{failure.factor_name} analysis failed: {failure.message}")
        results[name] = analysis
    return results


def aggregate(factors: dict) -> SeoScore:
    """
    Weighted mean of the factor scores. Fallback factors are left out of both the
    numerator and the denominator; with nothing left the result is a neutral 50.
    """
    total = weight_sum = 0.0
    for name, analysis in factors.items():
        if analysis.fallback:
            continue
        weight = FACTOR_WEIGHTS[name]
        total += analysis.score * weight
        weight_sum += weight
    if not weight_sum:
        return SeoScore(score=50)
    return SeoScore(score=total / weight_sum)


def _usable(analysis: FactorAnalysis) -> bool:
    return not analysis.fallback


def identify_strengths(page: ExtractedPage, f: dict) -> list:
    strengths = []
    kw, meta, content = f["keyword"], f["metaTags"], f["content"]
    mobile, speed, schema = f["mobile"], f["pageSpeed"], f["schemaMarkup"]
    images, eat, links = f["images"], f["eat"], f["internalLinks"]

    if page.security.has_https:
        strengths.append("Secure HTTPS implementation")
    if page.security.has_security_headers:
        strengths.append("Security headers are configured")

    if _usable(kw):
        if kw.score >= 80:
            strengths.append("Strong keyword optimization throughout the page")
        elif kw.in_title:
            strengths.append("Primary keyword is present in the title tag")

    if _usable(meta):
        if meta.score >= 80:
            strengths.append("Well-optimized meta tags")
        else:
            if meta.title and 30 <= meta.title_length <= 60:
                strengths.append("Title tag has optimal length")
            if meta.description and 70 <= meta.description_length <= 160:
                strengths.append("Meta description has optimal length")
            if meta.has_open_graph and meta.has_twitter_card:
                strengths.append("Good social media optimization with Open Graph and Twitter Card tags")

    if _usable(content):
        if content.score >= 80:
            strengths.append("High-quality content with good structure")
        else:
            if content.word_count >= 600:
                strengths.append("Good content depth with sufficient word count")
            if content.h1_count == 1:
                strengths.append("Proper H1 heading structure")
            if content.reading_ease is not None and content.reading_ease >= 70:
                strengths.append("Content has good readability")

    if _usable(mobile):
        if mobile.score >= 80:
            strengths.append("Excellent mobile responsiveness")
        elif mobile.mobile_compatible:
            strengths.append("Page is mobile-friendly")

    if _usable(speed) and speed.score >= 80:
        strengths.append("Fast page loading speed")
    if _usable(schema) and schema.has_schema:
        strengths.append("Proper implementation of schema markup")
    if _usable(images) and images.total_images and images.with_alt_text == images.total_images:
        strengths.append("All images have proper alt text")

    if _usable(eat):
        if eat.score >= 70:
            strengths.append("Strong E-E-A-T signals present on the page")
        elif eat.has_author and eat.has_citations:
            strengths.append("Good authority signals with author information and citations")

    if _usable(links) and links.link_count >= 3 and links.descriptive_anchors:
        strengths.append("Good internal linking structure with descriptive anchor text")

    return unique_capped(strengths, MAX_STRENGTHS)


def identify_weaknesses(page: ExtractedPage, f: dict) -> list:
    weaknesses = []
    kw, meta, content = f["keyword"], f["metaTags"], f["content"]
    mobile, speed, schema = f["mobile"], f["pageSpeed"], f["schemaMarkup"]
    images, eat, links = f["images"], f["eat"], f["internalLinks"]

    if not page.security.has_https:
        weaknesses.append("Page not served over secure HTTPS")
    if page.security.has_mixed_content:
        weaknesses.append("Mixed content issues (HTTP resources on HTTPS page)")
    if page.seo_issues.noindex:
        weaknesses.append("Page not indexable due to robots directives")
    if page.meta.viewport is None:
        weaknesses.append("Missing mobile viewport configuration")
    if page.seo_issues.meta_refresh:
        targets = page.seo_issues.meta_refresh_targets
        weaknesses.append("Page uses a meta refresh redirect" + (f" to {targets[0]}" if targets else ""))
    if page.status_code and page.status_code >= 400:
        weaknesses.append(f"Page returns HTTP status {page.status_code}")

    if _usable(kw):
        if kw.score < 50:
            weaknesses.append("Poor keyword optimization across the page")
        else:
            if not kw.in_title:
                weaknesses.append("Primary keyword missing from title tag")
            if not kw.in_h1:
                weaknesses.append("Primary keyword missing from H1 heading")
            if not kw.in_alt_text and page.images:
                weaknesses.append("Images missing keyword-optimized alt text")

    if _usable(meta):
        if not meta.title or not 30 <= meta.title_length <= 60:
            weaknesses.append("Title tag missing or not optimal length (30-60 characters)")
        if not meta.description or not 70 <= meta.description_length <= 160:
            weaknesses.append("Meta description missing or not optimal length (70-160 characters)")

    if _usable(content):
        if content.word_count < 300:
            weaknesses.append("Content is too thin (less than 300 words)")
        if content.h1_count == 0:
            weaknesses.append("Missing H1 heading")
        elif content.h1_count > 1:
            weaknesses.append("Multiple H1 headings (only one recommended)")
        if content.h2_count == 0:
            weaknesses.append("Missing H2 subheadings for content structure")

    if _usable(mobile) and not mobile.mobile_compatible:
        weaknesses.append("Page is not mobile-friendly")
    if _usable(speed) and speed.score < 50:
        weaknesses.append("Slow page loading speed")
    if _usable(schema) and not schema.has_schema:
        weaknesses.append("Missing schema markup")
    if _usable(images) and (missing := images.total_images - images.with_alt_text) > 0:
        weaknesses.append(f"{missing} images missing alt text")
    if _usable(links):
        if links.link_count < 2:
            weaknesses.append("Insufficient internal linking")
        if links.broken_links:
            weaknesses.append(f"{links.broken_links} broken internal links")
    if _usable(eat):
        if not eat.has_author:
            weaknesses.append("Missing author information or credentials")
        if not eat.has_citations:
            weaknesses.append("No external citations or references")

    return unique_capped(weaknesses, MAX_WEAKNESSES)


def generate_recommendations(page: ExtractedPage, f: dict) -> list:
    recs = []
    kw, meta, content = f["keyword"], f["metaTags"], f["content"]
    mobile, speed, schema = f["mobile"], f["pageSpeed"], f["schemaMarkup"]
    images, eat, links = f["images"], f["eat"], f["internalLinks"]

    if not page.security.has_https:
        recs.append("Install an SSL/TLS certificate and redirect all HTTP traffic to HTTPS")
    if page.security.has_mixed_content:
        recs.append("Update all insecure resource links from 'http://' to 'https://' or remove them")
    if page.seo_issues.noindex:
        recs.append("Remove the noindex directive if this page should appear in search results")

    if _usable(kw) and (primary := kw.primary_keyword):
        if not kw.in_title:
            recs.append(f'Add your primary keyword "{primary}" to your title tag, preferably near the beginning')
        if not kw.in_h1:
            recs.append(f'Include your primary keyword "{primary}" in your H1 heading')
        if not kw.in_alt_text and page.images:
            recs.append("Add alt text containing your primary keyword to relevant images")
        if kw.density < 0.5:
            recs.append(f"Increase keyword density slightly (current: {kw.density:.1f}%, recommended: 1-2%)")
        elif kw.density > 3:
            recs.append(f"Reduce keyword density to avoid keyword stuffing (current: {kw.density:.1f}%, recommended: 1-2%)")

    if _usable(meta):
        if not meta.title:
            recs.append("Add a title tag with your primary keyword")
        elif meta.title_length < 30:
            recs.append(f"Expand your title tag (currently {meta.title_length} characters, aim for 30-60)")
        elif meta.title_length > 60:
            recs.append(f"Shorten your title tag (currently {meta.title_length} characters, aim for 30-60)")
        if not meta.description:
            recs.append("Add a meta description containing your primary keyword")
        elif meta.description_length < 70:
            recs.append(f"Expand your meta description (currently {meta.description_length} characters, aim for 70-160)")
        elif meta.description_length > 160:
            recs.append(f"Shorten your meta description (currently {meta.description_length} characters, aim for 70-160)")

    if _usable(content):
        if content.word_count < 300:
            recs.append("Expand your content to at least 300 words for better topic coverage")
        elif content.word_count < 600:
            recs.append("Consider adding more comprehensive content (aim for 600+ words)")
        if content.h1_count == 0:
            recs.append("Add an H1 heading to your page that includes your primary keyword")
        elif content.h1_count > 1:
            recs.append("Use only one H1 heading per page, and use H2-H6 for subsections")
        if content.h2_count == 0:
            recs.append("Add H2 subheadings to structure your content better")
        elif content.h3_count == 0:
            recs.append("Add H3 subheadings under H2 sections to create a more detailed content hierarchy")
        if content.paragraph_count and content.word_count / content.paragraph_count > 100:
            recs.append("Break up long paragraphs into smaller chunks (3-4 sentences max) for better readability")

    if _usable(mobile):
        if not mobile.mobile_compatible:
            recs.append("Make your page mobile-friendly using responsive design techniques")
        if not mobile.has_viewport:
            recs.append("Add a viewport meta tag to control how your page appears on mobile devices")
    if _usable(schema) and not schema.has_schema:
        recs.append("Implement schema markup to enhance visibility in search results and potentially earn rich snippets")
    if _usable(images) and (missing := images.total_images - images.with_alt_text) > 0:
        recs.append(f"Add descriptive alt text to {missing} image(s) that includes relevant keywords")

    if _usable(links):
        if links.link_count < 2:
            recs.append("Add more internal links to help users and search engines discover related content")
        if links.link_count and not links.descriptive_anchors:
            recs.append('Use descriptive anchor text for internal links instead of generic text like "click here"')
        if links.broken_links:
            recs.append(f"Fix {links.broken_links} broken internal link(s)")
        if links.link_count < 10 and page.content.word_count > 1000:
            recs.append("For longer content, add more internal links (aim for 1 link per 150-200 words)")

    if _usable(speed):
        if speed.score < 70:
            recs.append("Improve page loading speed by optimizing images, minifying CSS/JS, and reducing server response time")
        if speed.lcp_ms > 2500:
            recs.append("Optimize Largest Contentful Paint (LCP) by prioritizing above-the-fold content loading")
        if speed.cls > 0.1:
            recs.append("Reduce layout shifts by specifying image dimensions and using content placeholders")

    if _usable(eat):
        if not eat.has_author:
            recs.append("Add author information to establish expertise and authority")
        if not eat.has_citations:
            recs.append("Include citations to authoritative external sources to improve trustworthiness")
        if not eat.has_credentials:
            recs.append("Display relevant credentials, certifications, or expertise to strengthen E-E-A-T signals")

    for analysis in f.values():
        recs.extend(analysis.recommendations)
    recs.extend(GENERAL_RECOMMENDATIONS)
    return unique_capped(recs, MAX_RECOMMENDATIONS)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def score_page(page: ExtractedPage, forced_keyword: str | None = None, timestamp: str | None = None) -> AnalysisResult:
    """Scores an already-extracted page. Never raises for page content."""
    factors = run_factors(page, forced_keyword)
    return AnalysisResult(
        url=page.url,
        timestamp=timestamp or _now(),
        overall_score=aggregate(factors),
        strengths=identify_strengths(page, factors),
        weaknesses=identify_weaknesses(page, factors),
        recommendations=generate_recommendations(page, factors),
        **{FACTOR_FIELDS[name]: analysis for name, analysis in factors.items()},
    )


def error_result(url: str, message: str, kind: ErrorKind | None, timestamp: str | None = None) -> AnalysisResult:
    """A complete result for a target that could not be analyzed: every factor at its neutral default."""
    factors = {name: result_type.as_fallback(message) for name, (result_type, _) in FACTOR_SCORERS.items()}
    if kind == ErrorKind.DNS_UNAVAILABLE:
        advice = "Check that the domain name is spelled correctly and that its DNS records are configured"
    elif kind == ErrorKind.INVALID_URL:
        advice = "Enter a valid website address such as https://example.com"
    else:
        advice = "Make sure the page is publicly reachable and returns HTML, then run the analysis again"
    return AnalysisResult(
        url=url,
        timestamp=timestamp or _now(),
        overall_score=aggregate(factors),
        weaknesses=[message] if message else [],
        recommendations=[advice],
        error=message or "Analysis failed",
        error_kind=kind,
        **{FACTOR_FIELDS[name]: analysis for name, analysis in factors.items()},
    )


async def analyze_async(url: str, options: AnalysisOptions | None = None,
                        session: AuditSession | None = None) -> AnalysisResult:
    options = options or AnalysisOptions()
    timestamp = _now()
    try:
        target = normalize_url(url)
    except InvalidUrlError as e:
        logging.warning(f"Rejected URL {url!r}: {e.message}")
        return error_result(str(url), e.message, ErrorKind.INVALID_URL, timestamp)

    owns_session = session is None
    session = session or AuditSession()
    try:
        logging.info(f"Analysis started for: {target}")
        try:
            fetch = await run_in_threadpool(session.fetch_page, target)
            page = analyzable_page(fetch)
        except SeoAuditError as e:
            logging.warning(f"Analysis of {target} stopped: {e.message}")
            return error_result(target, e.message, e.kind, timestamp)

        if options.verify_links:
            await verify_internal_links(page, session)
        result = score_page(page, options.forced_primary_keyword, timestamp)
        logging.info(f"Analysis complete for {target}: {result.overall_score.score}/100")
        return result
    finally:
        if owns_session:
            session.close()


def analyze(url: str, options: AnalysisOptions | None = None, settings: AuditSettings | None = None,
            **session_kwargs) -> AnalysisResult:
    """
    Analyzes one page and returns the full result. Bad targets (invalid URL, DNS,
    network, 5xx, non-HTML) come back as an error-flagged result, not an exception.
    Only invalid settings raise.
    """
    with AuditSession(settings, **session_kwargs) as session:
        return asyncio.run(analyze_async(url, options, session))


def analyze_site(url: str, settings: AuditSettings | None = None, cancel_event=None,
                 verify_links: bool = False, **session_kwargs) -> SiteCrawlResult:
    return crawl_site_sync(url, settings, cancel_event, verify_links, **session_kwargs)


def export_to_json(result: AnalysisResult, filename: str):
    """Exports the analysis result to a JSON file using its wire (camelCase) shape."""
    with open(filename, 'w', encoding='utf-8') as f:
        json.dump(result.to_wire(), f, indent=4)
    print(f" Full JSON report exported to {filename}")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    args = sys.argv[1:]
    if not args:
        print(" Error: Please provide a URL as the first argument.")
        sys.exit(1)

    test_url = args.pop(0)
    target_keyword = args[0] if args else None

    print(f" Starting SEO analysis for: {test_url}")
    if target_keyword: print(f" Target Keyword: {target_keyword}")

    final_report = analyze(test_url, AnalysisOptions(forced_primary_keyword=target_keyword),
                           settings=AuditSettings.from_env())

    domain_name = (urlsplit(final_report.url).hostname or "report").replace(".", "_")
    reports_dir = "reports"
    os.makedirs(reports_dir, exist_ok=True)
    json_filename = os.path.join(reports_dir, f"{domain_name}_seo_report.json")
    export_to_json(final_report, json_filename)

    print("\n---  Report Summary ---")
    if final_report.error:
        print(f"Error: {final_report.error}")
    print(f"Overall Score: {final_report.overall_score.score}/100 ({final_report.overall_score.category})")
    print("\nStrengths:")
    pprint.pprint(final_report.strengths)
    print("\nTop Suggestions:")
    pprint.pprint(final_report.recommendations[:5])
