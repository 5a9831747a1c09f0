from enum import Enum
from typing import ClassVar
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from errors import ErrorKind


def category_for(score: int) -> str:
    if score >= 90:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "needs-work"
    return "poor"


class WireModel(BaseModel):
    """Snake_case attributes in Python, camelCase keys on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class SeoScore(WireModel):
    """
    A 0-100 integer score whose category is always derived from the number.
    A category passed in by the caller is discarded.
    """
    model_config = ConfigDict(frozen=True)

    score: int
    category: str = "needs-work"

    @model_validator(mode="before")
    @classmethod
    def _derive_category(cls, data):
        if isinstance(data, (int, float)):
            data = {"score": data}
        if isinstance(data, dict):
            raw = data.get("score", 50)
            score = int(round(max(0.0, min(100.0, float(raw)))))
            return {"score": score, "category": category_for(score)}
        return data


def neutral_score() -> SeoScore:
    return SeoScore(score=50)


# ---------------------------------------------------------------- fetching

class FetchStatus(str, Enum):
    OK = "ok"
    DNS_ERROR = "dns_error"
    HTTP_ERROR = "http_error"
    NON_HTML = "non_html"
    NETWORK_ERROR = "network_error"


class DomainCheck(WireModel):
    model_config = ConfigDict(frozen=True)

    hostname: str
    available: bool
    address: str | None = None
    error_detail: str | None = None


class PageFetchResult(WireModel):
    model_config = ConfigDict(frozen=True)

    url: str
    final_url: str
    status: FetchStatus
    status_code: int | None = None
    html: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    load_time_ms: float = 0.0
    byte_size: int = 0
    content_type: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.OK

    @property
    def has_https(self) -> bool:
        return self.final_url.lower().startswith("https://")


# -------------------------------------------------------------- extraction

class MetaTags(WireModel):
    description: str | None = None
    robots: str | None = None
    googlebot: str | None = None
    viewport: str | None = None
    canonical: str | None = None
    author: str | None = None
    og: dict[str, str] = Field(default_factory=dict)
    twitter: dict[str, str] = Field(default_factory=dict)


class Headings(WireModel):
    h1: list[str] = Field(default_factory=list)
    h2: list[str] = Field(default_factory=list)
    h3: list[str] = Field(default_factory=list)
    h4: list[str] = Field(default_factory=list)
    h5: list[str] = Field(default_factory=list)
    h6: list[str] = Field(default_factory=list)


class InternalLink(WireModel):
    url: str
    anchor_text: str = ""
    broken: bool = False


class ExternalLink(WireModel):
    url: str
    anchor_text: str = ""


class PageLinks(WireModel):
    internal: list[InternalLink] = Field(default_factory=list)
    external: list[ExternalLink] = Field(default_factory=list)


class ImageInfo(WireModel):
    url: str
    alt: str | None = None
    has_srcset: bool = False
    lazy: bool = False
    width: str | None = None
    height: str | None = None


class SchemaItem(WireModel):
    types: list[str] = Field(default_factory=list)
    raw_json: str = ""


class PageContent(WireModel):
    text: str = ""
    word_count: int = 0
    paragraphs: list[str] = Field(default_factory=list)


class ResponsiveSignals(WireModel):
    has_media_queries: bool = False
    responsive_images: int = 0
    non_responsive_images: int = 0
    lazy_loaded_images: int = 0
    small_text_count: int = 0
    zoom_disabled: bool = False
    initial_scale: bool = False
    viewport_issues: list[str] = Field(default_factory=list)


class PerformanceInfo(WireModel):
    load_time_ms: float = 0.0
    byte_size: int = 0
    resource_count: int = 0


class SecurityFlags(WireModel):
    has_https: bool = False
    has_mixed_content: bool = False
    has_security_headers: bool = False
    insecure_urls: list[str] = Field(default_factory=list)
    security_headers: list[str] = Field(default_factory=list)


class AccessibilityFlags(WireModel):
    missing_alt_text: int = 0
    has_aria_attributes: bool = False
    has_proper_heading_structure: bool = False
    has_accessible_elements: bool = False


class SeoIssues(WireModel):
    noindex: bool = False
    broken_links: int = 0
    missing_alt_text: int = 0
    duplicate_meta_tags: bool = False
    thin_content: bool = False
    missing_headings: bool = False
    meta_refresh: bool = False
    meta_refresh_targets: list[str] = Field(default_factory=list)
    robots: str | None = None


class ExtractedPage(WireModel):
    url: str
    status_code: int | None = None
    title: str = ""
    meta: MetaTags = Field(default_factory=MetaTags)
    headings: Headings = Field(default_factory=Headings)
    links: PageLinks = Field(default_factory=PageLinks)
    images: list[ImageInfo] = Field(default_factory=list)
    schema_items: list[SchemaItem] = Field(default_factory=list)
    content: PageContent = Field(default_factory=PageContent)
    mobile_compatible: bool = False
    responsive: ResponsiveSignals = Field(default_factory=ResponsiveSignals)
    performance: PerformanceInfo = Field(default_factory=PerformanceInfo)
    security: SecurityFlags = Field(default_factory=SecurityFlags)
    accessibility: AccessibilityFlags = Field(default_factory=AccessibilityFlags)
    seo_issues: SeoIssues = Field(default_factory=SeoIssues)
    error: str | None = None

    @property
    def schema_types(self) -> list[str]:
        seen = []
        for item in self.schema_items:
            for t in item.types:
                if t not in seen:
                    seen.append(t)
        return seen

    @property
    def broken_link_count(self) -> int:
        return sum(1 for link in self.links.internal if link.broken)


class CrawlStats(WireModel):
    pages_crawled: int = 0
    errors: int = 0
    elapsed_ms: float = 0.0
    cancelled: bool = False


class SiteCrawlResult(WireModel):
    homepage: ExtractedPage
    other_pages: list[ExtractedPage] = Field(default_factory=list)
    reached_page_budget: bool = False
    has_sitemap_xml: bool = False
    stats: CrawlStats = Field(default_factory=CrawlStats)

    @property
    def pages(self) -> list[ExtractedPage]:
        return [self.homepage, *self.other_pages]


# ---------------------------------------------------------------- analysis

class FactorAnalysis(WireModel):
    """Common shape of every factor result: a derived score plus fallback bookkeeping."""
    factor_name: ClassVar[str] = ""

    overall_score: SeoScore = Field(default_factory=neutral_score)
    fallback: bool = False
    fallback_reason: str | None = None
    recommendations: list[str] = Field(default_factory=list)

    @classmethod
    def as_fallback(cls, reason: str):
        return cls(overall_score=neutral_score(), fallback=True, fallback_reason=reason)

    @property
    def score(self) -> int:
        return self.overall_score.score


class KeywordAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "keyword"

    primary_keyword: str | None = None
    forced: bool = False
    density: float = 0.0
    in_title: bool = False
    in_description: bool = False
    in_h1: bool = False
    in_headings: bool = False
    in_first_100_words: bool = False
    in_url: bool = False
    in_alt_text: bool = False
    related_keywords: list[str] = Field(default_factory=list)


class MetaTagsAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "metaTags"

    title: str = ""
    title_length: int = 0
    description: str | None = None
    description_length: int = 0
    keyword_in_title: bool = False
    keyword_in_description: bool = False
    has_canonical: bool = False
    has_robots: bool = False
    has_open_graph: bool = False
    has_twitter_card: bool = False


class ContentAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "content"

    word_count: int = 0
    paragraph_count: int = 0
    h1_count: int = 0
    h2_count: int = 0
    h3_count: int = 0
    reading_ease: float | None = None
    grade_level: float | None = None
    has_images: bool = False
    thin_content: bool = False


class InternalLinksAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "internalLinks"

    link_count: int = 0
    unique_links: int = 0
    broken_links: int = 0
    descriptive_anchors: int = 0
    generic_anchors: int = 0


class ImageAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "images"

    total_images: int = 0
    with_alt_text: int = 0
    alt_text_coverage: float = 0.0
    optimized_images: int = 0
    optimization_ratio: float = 0.0


class SchemaMarkupAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "schemaMarkup"

    has_schema: bool = False
    types: list[str] = Field(default_factory=list)
    recognized_families: list[str] = Field(default_factory=list)


class MobileAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "mobile"

    has_viewport: bool = False
    device_width: bool = False
    initial_scale: bool = False
    zoom_disabled: bool = False
    has_media_queries: bool = False
    responsive_images: int = 0
    small_text_count: int = 0
    mobile_compatible: bool = False
    issues: list[str] = Field(default_factory=list)


class PageSpeedAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "pageSpeed"

    estimated: bool = True
    lcp_ms: float = 0.0
    fid_ms: float = 0.0
    cls: float = 0.0
    ttfb_ms: float = 0.0
    lcp_score: int = 0
    fid_score: int = 0
    cls_score: int = 0
    ttfb_score: int = 0
    byte_size: int = 0
    resource_count: int = 0


class UserEngagementAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "userEngagement"

    estimated_bounce_rate: int = 0
    read_time_minutes: int = 0
    has_images: bool = False
    has_structure: bool = False


class EatAnalysis(FactorAnalysis):
    factor_name: ClassVar[str] = "eat"

    has_author: bool = False
    has_citations: bool = False
    has_credentials: bool = False
    external_link_count: int = 0


class AnalysisOptions(WireModel):
    forced_primary_keyword: str | None = None
    verify_links: bool = True


class AnalysisResult(WireModel):
    model_config = ConfigDict(frozen=True)

    url: str
    timestamp: str
    overall_score: SeoScore = Field(default_factory=neutral_score)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None
    keyword_analysis: KeywordAnalysis
    meta_tags_analysis: MetaTagsAnalysis
    content_analysis: ContentAnalysis
    internal_links_analysis: InternalLinksAnalysis
    image_analysis: ImageAnalysis
    schema_markup_analysis: SchemaMarkupAnalysis
    mobile_analysis: MobileAnalysis
    page_speed_analysis: PageSpeedAnalysis
    user_engagement_analysis: UserEngagementAnalysis
    eat_analysis: EatAnalysis

    @property
    def factors(self) -> list[FactorAnalysis]:
        return [getattr(self, field) for field in FACTOR_FIELDS.values()]


# factor name -> AnalysisResult field, in report order
FACTOR_FIELDS = {
    "keyword": "keyword_analysis",
    "metaTags": "meta_tags_analysis",
    "content": "content_analysis",
    "internalLinks": "internal_links_analysis",
    "images": "image_analysis",
    "schemaMarkup": "schema_markup_analysis",
    "mobile": "mobile_analysis",
    "pageSpeed": "page_speed_analysis",
    "userEngagement": "user_engagement_analysis",
    "eat": "eat_analysis",
}
