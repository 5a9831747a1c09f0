from models import ExtractedPage, SchemaMarkupAnalysis, SeoScore

# family label -> schema.org types that belong to it
TYPE_FAMILIES = {
    "Product": {"Product", "Offer", "AggregateOffer"},
    "Organization": {"Organization", "LocalBusiness", "Corporation"},
    "Article": {"Article", "BlogPosting", "NewsArticle"},
    "BreadcrumbList": {"BreadcrumbList"},
    "FAQ/HowTo": {"FAQPage", "HowTo"},
}


def schema_markup_test(page: ExtractedPage, keyword: str | None = None) -> SchemaMarkupAnalysis:
    types = page.schema_types
    families = [label for label, members in TYPE_FAMILIES.items() if members.intersection(types)]

    analysis = SchemaMarkupAnalysis(has_schema=bool(types), types=types, recognized_families=families)

    score = 50
    if analysis.has_schema:
        score += 25
    score += 5 * len(families)

    if "BreadcrumbList" not in families:
        analysis.recommendations.append("Add BreadcrumbList structured data to show the page's position in the site")
    analysis.overall_score = SeoScore(score=score)
    return analysis
