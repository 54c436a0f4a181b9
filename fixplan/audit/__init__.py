"""
fixplan.audit: crawl-and-analyze engine for SEO fix plans.

Fetches a site's homepage, discovers pages through robots.txt, sitemaps and
links, extracts signals from raw HTML, evaluates the rule catalogue and
scores the result.

Usage:
    from fixplan.audit import AnalysisConfig, SiteAuditor, run_analysis

    # Full run, every ending folded into an outcome
    outcome = await run_analysis(AnalysisConfig(url="https://example.com"))

    # Result or exception, with live stage events
    reporter = StageReporter()
    reporter.add_listener(print)
    result = await SiteAuditor().analyze(config, reporter=reporter)

    # Direct HTML extraction (no network)
    signals = extract_signals(html, "https://example.com/")
"""

from .orchestrator import CancelToken, SiteAuditor, run_analysis
from .extractor import extract_body_text, extract_signals, parse_json_ld
from .links import discover_internal_links, normalize_url
from .robots import fetch_robots, fetch_sitemap, is_allowed, parse_robots, sitemap_candidates
from .keywords import KeywordEngine
from .rules import RULES, Rule, RuleContext, evaluate_rules
from .scoring import SEVERITY_DEDUCTIONS, ScoreReport, build_summary, rank_issues, score_issues
from .stages import StageReporter
from .errors import (
    AnalysisCancelled,
    AnalysisTimeout,
    AuditError,
    HomepageFetchError,
    InvalidTargetError,
)
from .models import (
    Severity,
    Category,
    CheckCategory,
    Platform,
    GeographicScope,
    StageId,
    StageStatus,
    OutcomeStatus,
    MarketingTags,
    JsonLdBlock,
    PageSignals,
    RobotsInfo,
    SitemapInfo,
    PlatformFixSteps,
    Issue,
    KeywordData,
    CompetitorKeywordAnalysis,
    KeywordSuggestion,
    KeywordAnalysis,
    PerformanceReport,
    AnalysisConfig,
    ScoreBreakdownEntry,
    AnalysisSummary,
    AnalysisResult,
    StageEvent,
    AnalysisOutcome,
)

__all__ = [
    # Main entry points
    "SiteAuditor",
    "run_analysis",
    "CancelToken",
    "StageReporter",
    # Engine pieces
    "extract_signals",
    "extract_body_text",
    "parse_json_ld",
    "discover_internal_links",
    "normalize_url",
    "parse_robots",
    "fetch_robots",
    "fetch_sitemap",
    "sitemap_candidates",
    "is_allowed",
    "KeywordEngine",
    "RULES",
    "Rule",
    "RuleContext",
    "evaluate_rules",
    "SEVERITY_DEDUCTIONS",
    "ScoreReport",
    "score_issues",
    "rank_issues",
    "build_summary",
    # Errors
    "AuditError",
    "InvalidTargetError",
    "HomepageFetchError",
    "AnalysisTimeout",
    "AnalysisCancelled",
    # Enums
    "Severity",
    "Category",
    "CheckCategory",
    "Platform",
    "GeographicScope",
    "StageId",
    "StageStatus",
    "OutcomeStatus",
    # Signals
    "MarketingTags",
    "JsonLdBlock",
    "PageSignals",
    "RobotsInfo",
    "SitemapInfo",
    # Issues & keywords
    "PlatformFixSteps",
    "Issue",
    "KeywordData",
    "CompetitorKeywordAnalysis",
    "KeywordSuggestion",
    "KeywordAnalysis",
    "PerformanceReport",
    # Config & results
    "AnalysisConfig",
    "ScoreBreakdownEntry",
    "AnalysisSummary",
    "AnalysisResult",
    "StageEvent",
    "AnalysisOutcome",
]
