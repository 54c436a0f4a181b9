"""
Fix-plan data models.

Pydantic models for page signals, robots/sitemap discovery, issues,
keyword analysis and the terminal AnalysisResult of one run.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Fixed ordinal: 0 is the most severe."""
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW]


class Category(str, Enum):
    INDEXING = "indexing"
    ON_PAGE = "on-page"
    TECHNICAL = "technical"
    PERFORMANCE = "performance"
    STRUCTURED_DATA = "structured-data"
    IMAGES = "images"
    INTERNAL_LINKING = "internal-linking"
    CONTENT = "content"
    SECURITY = "security"
    MARKETING = "marketing"
    KEYWORDS = "keywords"


class CheckCategory(str, Enum):
    """User-facing check toggles; each rule belongs to exactly one."""

    INDEXING = "indexing"
    META_TAGS = "meta-tags"
    HEADINGS = "headings"
    CONTENT = "content"
    IMAGES = "images"
    INTERNAL_LINKING = "internal-linking"
    STRUCTURED_DATA = "structured-data"
    TECHNICAL = "technical"
    PERFORMANCE = "performance"
    SECURITY = "security"
    REPUTATION = "reputation"
    GTM = "gtm"
    GA4 = "ga4"
    SEARCH_CONSOLE = "search-console"
    CLARITY = "clarity"
    BUSINESS_PROFILE = "business-profile"
    GOOGLE_ADS = "google-ads"
    CONVERSION_TRACKING = "conversion-tracking"
    MERCHANT_CENTER = "merchant-center"


class Platform(str, Enum):
    CUSTOM = "custom"
    WORDPRESS = "wordpress"
    SHOPIFY = "shopify"
    WEBFLOW = "webflow"


class GeographicScope(str, Enum):
    INTERNATIONAL = "international"
    NATIONAL = "national"
    STATE = "state"
    REGIONAL = "regional"


class StageId(str, Enum):
    VALIDATE = "validate"
    HOMEPAGE = "homepage"
    ROBOTS = "robots"
    CRAWL = "crawl"
    ONPAGE = "onpage"
    TECHNICAL = "technical"
    PERFORMANCE = "performance"
    SCORE = "score"


STAGE_NAMES: Dict[StageId, str] = {
    StageId.VALIDATE: "Normalize & validate target",
    StageId.HOMEPAGE: "Fetch homepage & resolve canonical/redirects",
    StageId.ROBOTS: "robots.txt & sitemap discovery",
    StageId.CRAWL: "Crawl internal pages",
    StageId.ONPAGE: "On-page analysis",
    StageId.TECHNICAL: "Technical checks",
    StageId.PERFORMANCE: "Performance checks",
    StageId.SCORE: "Build Fix Plan & score",
}


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"
    SKIPPED = "skipped"


class OutcomeStatus(str, Enum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


# ─── Page Signals ─────────────────────────────────────────────────────


class MarketingTags(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_gtm: bool = False
    gtm_id: Optional[str] = None
    has_ga4: bool = False
    ga4_id: Optional[str] = None
    has_search_console_verification: bool = False
    search_console_method: Optional[str] = None
    has_clarity: bool = False
    clarity_id: Optional[str] = None
    has_google_ads_tag: bool = False
    google_ads_id: Optional[str] = None
    has_google_ads_conversion: bool = False
    has_local_business_schema: bool = False
    has_product_schema: bool = False
    has_merchant_center_link: bool = False


class JsonLdBlock(BaseModel):
    """Outcome of parsing one <script type="application/ld+json"> block."""

    model_config = ConfigDict(frozen=True)

    index: int
    ok: bool
    types: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class PageSignals(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    status_code: int = 200
    title: Optional[str] = None
    title_length: Optional[int] = None
    meta_description: Optional[str] = None
    meta_description_length: Optional[int] = None
    h1_count: int = 0
    h1_text: Optional[str] = None
    canonical: Optional[str] = None
    meta_robots: Optional[str] = None
    has_viewport: bool = False
    has_lang: bool = False
    lang_value: Optional[str] = None
    has_open_graph: bool = False
    has_twitter_cards: bool = False
    has_json_ld: bool = False
    json_ld_types: List[str] = Field(default_factory=list)
    json_ld_blocks_total: int = 0
    json_ld_blocks_parsed: int = 0
    word_count: int = 0
    internal_links: int = 0
    external_links: int = 0
    total_images: int = 0
    images_without_alt: int = 0
    images_empty_alt: int = 0
    redirect_chain: List[str] = Field(default_factory=list)
    marketing: MarketingTags = Field(default_factory=MarketingTags)


# ─── Robots / Sitemaps ────────────────────────────────────────────────


class RobotsInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    found: bool = False
    content: Optional[str] = None
    sitemap_urls: List[str] = Field(default_factory=list)
    disallowed_paths: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class SitemapInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    url_count: int = 0
    urls: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


# ─── Issues ───────────────────────────────────────────────────────────


class PlatformFixSteps(BaseModel):
    model_config = ConfigDict(frozen=True)

    wordpress: Optional[List[str]] = None
    shopify: Optional[List[str]] = None
    webflow: Optional[List[str]] = None
    custom: Optional[List[str]] = None


class Issue(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    severity: Severity
    category: Category
    why_it_matters: str
    evidence: List[str] = Field(default_factory=list)
    affected_urls: Optional[List[str]] = None
    fix_steps: List[str] = Field(default_factory=list)
    platform_fix_steps: Optional[PlatformFixSteps] = None
    snippets: Optional[List[str]] = None
    verify_steps: List[str] = Field(default_factory=list)
    mistakes_to_avoid: Optional[List[str]] = None
    manual_check_required: bool = False

    def steps_for(self, platform: Platform) -> List[str]:
        """Fix steps specialised for a platform, falling back to the generic list."""
        if self.platform_fix_steps is not None:
            steps = getattr(self.platform_fix_steps, platform.value)
            if steps:
                return steps
        return self.fix_steps


# ─── Keywords ─────────────────────────────────────────────────────────


class KeywordData(BaseModel):
    model_config = ConfigDict(frozen=True)

    keyword: str
    frequency: int
    density: float
    in_title: bool = False
    in_h1: bool = False
    in_meta_description: bool = False
    prominence: int = 0


class CompetitorKeywordAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    competitor_url: str
    keywords: List[KeywordData] = Field(default_factory=list)
    top_keywords: List[str] = Field(default_factory=list)
    unique_keywords: List[str] = Field(default_factory=list)


class KeywordSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    keyword: str
    reason: str
    competitors_using: List[str] = Field(default_factory=list)
    estimated_difficulty: str = "easy"


class KeywordAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    site_keywords: List[KeywordData] = Field(default_factory=list)
    top_keywords: List[str] = Field(default_factory=list)
    competitor_analysis: List[CompetitorKeywordAnalysis] = Field(default_factory=list)
    suggested_keywords: List[KeywordSuggestion] = Field(default_factory=list)
    keyword_gaps: List[str] = Field(default_factory=list)


# ─── Performance ──────────────────────────────────────────────────────


class PerformanceReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: str
    score: Optional[int] = None
    metrics: Dict[str, Optional[float]] = Field(default_factory=dict)
    error: Optional[str] = None


# ─── Config & Result ──────────────────────────────────────────────────


class AnalysisConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    competitors: List[str] = Field(default_factory=list, max_length=3)
    crawl_limit: int = Field(default=25, ge=1)
    include_subdomains: bool = False
    sitemap_override: Optional[str] = None
    selected_categories: List[CheckCategory] = Field(
        default_factory=lambda: list(CheckCategory)
    )
    enable_keyword_analysis: bool = False
    geographic_scope: GeographicScope = GeographicScope.NATIONAL
    target_location: Optional[str] = None
    check_mobile: bool = True
    check_desktop: bool = True
    use_psi: bool = False

    @field_validator("competitors")
    @classmethod
    def _strip_competitors(cls, value: List[str]) -> List[str]:
        return [c.strip() for c in value if c and c.strip()]

    def is_selected(self, check: CheckCategory) -> bool:
        return check in self.selected_categories

    @property
    def origin(self) -> str:
        parsed = urlparse(self.url)
        return f"{parsed.scheme}://{parsed.netloc}"


class ScoreBreakdownEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: Category
    deductions: int = 0
    max_deduction: int = 25
    issues: int = 0


class AnalysisSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    pages_analyzed: int = 0
    total_issues: int = 0
    critical_issues: int = 0
    high_issues: int = 0
    medium_issues: int = 0
    low_issues: int = 0


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    config: AnalysisConfig
    started_at: datetime
    completed_at: datetime
    score: int = Field(ge=0, le=100)
    score_breakdown: List[ScoreBreakdownEntry] = Field(default_factory=list)
    homepage: PageSignals
    robots: RobotsInfo
    sitemaps: List[SitemapInfo] = Field(default_factory=list)
    pages: List[PageSignals] = Field(default_factory=list)
    issues: List[Issue] = Field(default_factory=list)
    keyword_analysis: Optional[KeywordAnalysis] = None
    performance: List[PerformanceReport] = Field(default_factory=list)
    summary: AnalysisSummary = Field(default_factory=AnalysisSummary)


# ─── Progress & Outcome ───────────────────────────────────────────────


class StageEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage_id: StageId
    status: StageStatus
    progress: Optional[int] = None
    message: Optional[str] = None
    error: Optional[str] = None
    at: datetime = Field(default_factory=datetime.now)


class AnalysisOutcome(BaseModel):
    status: OutcomeStatus
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    stages: List[StageEvent] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
