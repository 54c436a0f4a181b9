"""
Keyword analysis.

Scores single words and 2-3 word phrases by where they appear on a page
(title, H1, meta description) and how dense they are in the body copy, merges
per-page results into a site-wide set and diffs it against competitors'
keyword sets to surface gaps.
"""

import asyncio
import logging
import re
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from ..config import Settings
from ..fetcher import Fetcher, FetchError
from .extractor import extract_body_text, extract_signals
from .models import (
    AnalysisConfig,
    CompetitorKeywordAnalysis,
    GeographicScope,
    KeywordAnalysis,
    KeywordData,
    KeywordSuggestion,
    PageSignals,
)

logger = logging.getLogger(__name__)

MIN_FREQUENCY = 2
SITE_KEYWORD_LIMIT = 100
TOP_KEYWORD_LIMIT = 20
COMPETITOR_KEYWORD_LIMIT = 50
MAX_COMPETITORS = 4
SUGGESTION_LIMIT = 15
GAPS_PER_COMPETITOR = 5
GAP_LIMIT = 20

STOP_WORDS = frozenset(
    """
    a an the and or but in on at to for of with by from up about into through
    during before after above below between under again further then once here
    there when where why how all each few more most other some such no nor not
    only own same so than too very can will just should now also is are was
    were be been being have has had do does did would could might must shall
    get this that these those i you he she it we they what which who whom its
    your their our my his her as if while because until unless although though
    since however therefore thus hence yet still even click read learn view see
    go back next previous home menu contact us me submit send email phone
    """.split()
)

_NON_WORD_RE = re.compile(r"[^a-z0-9\s-]")


def tokenize(text: str) -> List[str]:
    """Lower-case, replace anything outside [a-z0-9 whitespace -] with a space, split."""
    return _NON_WORD_RE.sub(" ", text.lower()).split()


def extract_keywords_from_text(text: str) -> Counter:
    """Unigram frequencies, ignoring tokens of 2 chars or fewer and stop words."""
    return Counter(w for w in tokenize(text) if len(w) > 2 and w not in STOP_WORDS)


def extract_ngrams(text: str, n: int) -> Counter:
    """
    Phrase frequencies for n-word windows.

    Windows are taken over tokens longer than one character. A phrase is kept
    only when strictly more than half of its words are not stop words.
    """
    words = [w for w in tokenize(text) if len(w) > 1]
    counts: Counter = Counter()
    for i in range(len(words) - n + 1):
        window = words[i:i + n]
        meaningful = sum(1 for w in window if w not in STOP_WORDS)
        if meaningful * 2 > n:
            counts[" ".join(window)] += 1
    return counts


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def score_prominence(in_title: bool, in_h1: bool, in_meta: bool, density: float) -> int:
    prominence = 0.0
    if in_title:
        prominence += 30
    if in_h1:
        prominence += 25
    if in_meta:
        prominence += 20
    prominence += min(25.0, density * 10)
    return min(100, _round_half_up(prominence))


def analyze_page_keywords(page: PageSignals, body_text: str) -> List[KeywordData]:
    """
    Keyword candidates for one page, most prominent first.

    Args:
        page: Signals of the page (title, first H1, meta description).
        body_text: Visible body copy of the same page.
    """
    title = (page.title or "").lower()
    h1 = (page.h1_text or "").lower()
    meta = (page.meta_description or "").lower()

    candidates: Dict[str, int] = dict(extract_keywords_from_text(body_text))
    for n in (2, 3):
        for phrase, count in extract_ngrams(body_text, n).items():
            if count >= MIN_FREQUENCY:
                candidates[phrase] = count

    total_words = len(body_text.split()) or 1
    keywords: List[KeywordData] = []
    for keyword, frequency in candidates.items():
        if frequency < MIN_FREQUENCY:
            continue
        density = frequency / total_words * 100
        in_title = keyword in title
        in_h1 = keyword in h1
        in_meta = keyword in meta
        keywords.append(
            KeywordData(
                keyword=keyword,
                frequency=frequency,
                density=round(density, 2),
                in_title=in_title,
                in_h1=in_h1,
                in_meta_description=in_meta,
                prominence=score_prominence(in_title, in_h1, in_meta, density),
            )
        )

    keywords.sort(key=lambda k: k.prominence, reverse=True)
    return keywords


def merge_site_keywords(per_page: Iterable[Sequence[KeywordData]]) -> List[KeywordData]:
    """
    Merge page keyword lists into one site-level list.

    On a repeated keyword the frequencies are summed and the highest
    prominence wins; placement flags and density follow the most prominent
    occurrence. Sorted by prominence, descending.
    """
    merged: Dict[str, KeywordData] = {}
    for keywords in per_page:
        for kw in keywords:
            existing = merged.get(kw.keyword)
            if existing is None:
                merged[kw.keyword] = kw
                continue
            best = kw if kw.prominence > existing.prominence else existing
            merged[kw.keyword] = best.model_copy(
                update={"frequency": existing.frequency + kw.frequency}
            )
    return sorted(merged.values(), key=lambda k: k.prominence, reverse=True)


def _hostname(url: str) -> str:
    return urlparse(url).hostname or url


def build_competitor_analysis(
    competitor_url: str, html: str, site_keyword_set: Optional[set] = None
) -> CompetitorKeywordAnalysis:
    page = extract_signals(html, competitor_url)
    keywords = analyze_page_keywords(page, extract_body_text(html))
    top = [k.keyword for k in keywords[:TOP_KEYWORD_LIMIT]]
    unique = [k for k in top if k not in site_keyword_set] if site_keyword_set is not None else []
    return CompetitorKeywordAnalysis(
        competitor_url=competitor_url,
        keywords=keywords[:COMPETITOR_KEYWORD_LIMIT],
        top_keywords=top,
        unique_keywords=unique,
    )


def generate_keyword_suggestions(
    site_keywords: Sequence[KeywordData],
    competitors: Sequence[CompetitorKeywordAnalysis],
    config: AnalysisConfig,
) -> List[KeywordSuggestion]:
    """Keywords competitors rank for that the site lacks, most shared first."""
    site_set = {k.keyword for k in site_keywords}
    using: Dict[str, List[str]] = {}
    for analysis in competitors:
        host = _hostname(analysis.competitor_url)
        for keyword in analysis.top_keywords:
            if keyword not in site_set:
                using.setdefault(keyword, []).append(host)

    ranked = sorted(using.items(), key=lambda item: len(item[1]), reverse=True)

    suggestions = []
    for keyword, hosts in ranked[:SUGGESTION_LIMIT]:
        if len(hosts) >= 3:
            difficulty = "hard"
        elif len(hosts) >= 2:
            difficulty = "medium"
        else:
            difficulty = "easy"

        if len(hosts) >= 2:
            reason = f"Used by {len(hosts)} competitors - proven {config.geographic_scope.value} keyword"
        else:
            reason = f"Competitor advantage - {hosts[0]} ranks for this"

        if config.target_location:
            if config.geographic_scope == GeographicScope.REGIONAL:
                reason += f". Consider localizing for {config.target_location}"
            elif config.geographic_scope == GeographicScope.STATE:
                reason += f". Target {config.target_location} specifically"

        suggestions.append(
            KeywordSuggestion(
                keyword=keyword,
                reason=reason,
                competitors_using=hosts,
                estimated_difficulty=difficulty,
            )
        )
    return suggestions


def find_keyword_gaps(competitors: Sequence[CompetitorKeywordAnalysis]) -> List[str]:
    gaps: List[str] = []
    for analysis in competitors:
        for keyword in analysis.unique_keywords[:GAPS_PER_COMPETITOR]:
            if keyword not in gaps:
                gaps.append(keyword)
    return gaps[:GAP_LIMIT]


def competitor_urls(config: AnalysisConfig, reference: Optional[str]) -> List[str]:
    """User competitors plus the reference competitor, bounded to MAX_COMPETITORS."""
    urls = list(config.competitors)
    if reference:
        ref_host = _hostname(reference)
        if not any(ref_host in c for c in urls):
            urls.append(reference)
    return urls[:MAX_COMPETITORS]


class KeywordEngine:
    """
    Site + competitor keyword analysis for one run.

    Usage:
        engine = KeywordEngine(fetcher, settings)
        analysis = await engine.analyze(config, [(homepage, html), ...])
    """

    def __init__(self, fetcher: Fetcher, settings: Optional[Settings] = None):
        self.fetcher = fetcher
        self.settings = settings or Settings()

    def site_keywords(self, pages: Sequence[Tuple[PageSignals, str]]) -> List[KeywordData]:
        per_page = [analyze_page_keywords(page, extract_body_text(html)) for page, html in pages]
        return merge_site_keywords(per_page)[:SITE_KEYWORD_LIMIT]

    async def _fetch_competitor(
        self, url: str, site_set: set, limiter: asyncio.Semaphore
    ) -> Optional[CompetitorKeywordAnalysis]:
        async with limiter:
            try:
                response = await self.fetcher.fetch(url, require_ok=True)
            except FetchError as e:
                logger.warning(f"Failed to fetch competitor {url}: {e.reason}")
                return None
        return build_competitor_analysis(url, response.text, site_set)

    async def analyze(
        self, config: AnalysisConfig, pages: Sequence[Tuple[PageSignals, str]]
    ) -> KeywordAnalysis:
        """
        Args:
            config: Run configuration (competitors, geographic scope).
            pages: (signals, raw html) for the homepage and every crawled page.
        """
        site_keywords = self.site_keywords(pages)
        site_set = {k.keyword for k in site_keywords}

        urls = competitor_urls(config, self.settings.reference_competitor)
        limiter = asyncio.Semaphore(self.settings.competitor_concurrency)
        fetched = await asyncio.gather(
            *(self._fetch_competitor(url, site_set, limiter) for url in urls)
        )
        competitors = [c for c in fetched if c is not None]

        suggestions = generate_keyword_suggestions(site_keywords, competitors, config)
        gaps = find_keyword_gaps(competitors)
        logger.info(
            f"Keyword analysis: {len(site_keywords)} site keywords, "
            f"{len(competitors)}/{len(urls)} competitors, {len(suggestions)} suggestions"
        )

        return KeywordAnalysis(
            site_keywords=site_keywords,
            top_keywords=[k.keyword for k in site_keywords[:TOP_KEYWORD_LIMIT]],
            competitor_analysis=competitors,
            suggested_keywords=suggestions,
            keyword_gaps=gaps,
        )
