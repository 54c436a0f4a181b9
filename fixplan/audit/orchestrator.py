"""
SiteAuditor: the crawl-and-analyze pipeline.

Stages run strictly in order (validate, homepage, robots, crawl, onpage,
technical, performance, score), each reported through a StageReporter.
Raw HTML only lives in the locals of one run; the AnalysisResult carries
signals, never markup.

Usage:
    outcome = await run_analysis(AnalysisConfig(url="https://example.com"))
    if outcome.status == OutcomeStatus.COMPLETE:
        print(outcome.result.score)
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from ..config import Settings
from ..fetcher import Fetcher, FetchError
from .errors import (
    AnalysisCancelled,
    AnalysisTimeout,
    AuditError,
    HomepageFetchError,
    InvalidTargetError,
)
from .extractor import extract_signals
from .keywords import KeywordEngine
from .links import discover_internal_links, is_same_site, normalize_url
from .models import (
    AnalysisConfig,
    AnalysisOutcome,
    AnalysisResult,
    CheckCategory,
    Issue,
    OutcomeStatus,
    PageSignals,
    PerformanceReport,
    SitemapInfo,
    StageId,
)
from .performance import fetch_pagespeed
from .reputation import check_reputation
from .robots import fetch_robots, fetch_sitemap, is_allowed, sitemap_candidates
from .rules import RuleContext, evaluate_rules
from .scoring import build_summary, rank_issues, score_issues
from .stages import StageReporter

logger = logging.getLogger(__name__)

CANCEL_POLL_INTERVAL = 0.05


class CancelToken:
    """
    Cancellation signal shared between the caller and a run.

    Thread-safe: the server cancels from its request thread while the run
    executes on its own event loop.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: Optional[StageId] = None) -> None:
        if self._event.is_set():
            raise AnalysisCancelled(stage)

    async def wait(self) -> None:
        while not self._event.is_set():
            await asyncio.sleep(CANCEL_POLL_INTERVAL)


def validate_target(url: str) -> str:
    """Return the trimmed URL, or raise InvalidTargetError."""
    url = (url or "").strip()
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError as e:
        raise InvalidTargetError() from e
    if parsed.scheme not in ("http", "https") or not host:
        raise InvalidTargetError()
    return url


class _AuditRun:
    """State of one pipeline execution. Discarded when the run ends."""

    def __init__(
        self,
        config: AnalysisConfig,
        settings: Settings,
        fetcher: Fetcher,
        reporter: StageReporter,
        cancel: CancelToken,
    ):
        self.config = config
        self.settings = settings
        self.fetcher = fetcher
        self.reporter = reporter
        self.cancel = cancel
        self.stage: Optional[StageId] = None

    def enter(self, stage: StageId) -> None:
        self.cancel.raise_if_cancelled(self.stage)
        self.stage = stage
        self.reporter.start(stage)

    async def execute(self, started_at: datetime) -> AnalysisResult:
        config = self.config

        # ── homepage ──────────────────────────────────────────────────
        self.enter(StageId.HOMEPAGE)
        try:
            response = await self.fetcher.fetch(config.url, require_ok=True)
        except FetchError as e:
            raise HomepageFetchError(e.reason) from e
        home_html = response.text
        homepage = extract_signals(home_html, response.final_url, response.status_code).model_copy(
            update={"redirect_chain": response.redirect_chain}
        )
        self.reporter.complete(StageId.HOMEPAGE, f"Fetched {response.final_url} ({response.status_code})")

        # ── robots.txt & sitemaps ─────────────────────────────────────
        self.enter(StageId.ROBOTS)
        robots = await fetch_robots(self.fetcher, config.url)
        candidates = sitemap_candidates(config.url, robots, config.sitemap_override)
        self.cancel.raise_if_cancelled(StageId.ROBOTS)
        fetched = await asyncio.gather(*(fetch_sitemap(self.fetcher, url) for url in candidates))
        sitemaps = [s for s in fetched if s.url_count > 0]
        self.reporter.complete(
            StageId.ROBOTS,
            f"robots.txt {'found' if robots.found else 'missing'}, {len(sitemaps)} sitemap(s)",
        )

        # ── crawl ─────────────────────────────────────────────────────
        self.enter(StageId.CRAWL)
        targets = self.crawl_targets(home_html, response.final_url, robots.disallowed_paths, sitemaps)
        crawled = await self.crawl(targets, robots.disallowed_paths, response.final_url)
        pages = [signals for signals, _ in crawled]
        self.reporter.complete(StageId.CRAWL, f"Crawled {len(pages)}/{len(targets)} page(s)")

        ctx = RuleContext(config=config, homepage=homepage, pages=pages, robots=robots)

        # ── on-page ───────────────────────────────────────────────────
        self.enter(StageId.ONPAGE)
        if config.enable_keyword_analysis:
            engine = KeywordEngine(self.fetcher, self.settings)
            ctx.keyword_analysis = await engine.analyze(config, [(homepage, home_html)] + crawled)
        issues: List[Issue] = evaluate_rules(ctx, StageId.ONPAGE)
        self.reporter.complete(StageId.ONPAGE, f"{len(issues)} on-page issue(s)")

        # ── technical ─────────────────────────────────────────────────
        self.enter(StageId.TECHNICAL)
        if config.is_selected(CheckCategory.REPUTATION):
            ctx.reputation = check_reputation(urlparse(config.url).hostname or "")
        technical = evaluate_rules(ctx, StageId.TECHNICAL)
        issues.extend(technical)
        self.reporter.complete(StageId.TECHNICAL, f"{len(technical)} technical issue(s)")

        # ── performance ───────────────────────────────────────────────
        self.cancel.raise_if_cancelled(self.stage)
        if config.use_psi and config.is_selected(CheckCategory.PERFORMANCE):
            self.enter(StageId.PERFORMANCE)
            ctx.performance = await self.measure_performance()
            slow = evaluate_rules(ctx, StageId.PERFORMANCE)
            issues.extend(slow)
            self.reporter.complete(StageId.PERFORMANCE, f"{len(ctx.performance)} PageSpeed report(s)")
        else:
            self.stage = StageId.PERFORMANCE
            self.reporter.skip(StageId.PERFORMANCE, "PageSpeed Insights not requested")

        # ── score ─────────────────────────────────────────────────────
        self.enter(StageId.SCORE)
        issues = rank_issues(issues)
        report = score_issues(issues)
        result = AnalysisResult(
            config=config,
            started_at=started_at,
            completed_at=datetime.now(),
            score=report.score,
            score_breakdown=report.breakdown,
            homepage=homepage,
            robots=robots,
            sitemaps=sitemaps,
            pages=pages,
            issues=issues,
            keyword_analysis=ctx.keyword_analysis,
            performance=ctx.performance,
            summary=build_summary(issues, pages_analyzed=1 + len(pages)),
        )
        self.reporter.complete(StageId.SCORE, f"Score {result.score}/100, {len(issues)} issue(s)")
        return result

    def crawl_targets(
        self,
        home_html: str,
        final_url: str,
        disallowed: List[str],
        sitemaps: List[SitemapInfo],
    ) -> List[str]:
        """
        Pages to crawl, homepage links first, then sitemap entries.

        Excludes the homepage itself and anything robots.txt disallows, and is
        bounded to min(crawl_limit - 1, page_cap).
        """
        config = self.config
        budget = max(0, min(config.crawl_limit - 1, self.settings.page_cap))
        if budget == 0:
            return []

        seen = {normalize_url(config.url), normalize_url(final_url)}
        ordered: List[str] = []

        discovered = sorted(discover_internal_links(home_html, final_url, config.include_subdomains))
        from_sitemaps = [
            normalize_url(url)
            for sitemap in sitemaps
            for url in sitemap.urls
            if is_same_site(url, config.url, config.include_subdomains)
        ]
        for url in discovered + from_sitemaps:
            if url in seen:
                continue
            seen.add(url)
            if not is_allowed(url, disallowed):
                logger.info(f"Skipping {url}: disallowed by robots.txt")
                continue
            ordered.append(url)
        return ordered[:budget]

    async def crawl(
        self, targets: List[str], disallowed: List[str], home_url: str
    ) -> List[Tuple[PageSignals, str]]:
        """
        Fetch every target with a bounded worker pool.

        Redirects are followed only while each hop stays on the site and is
        allowed by robots.txt. Pages are recorded under their final URL; failed
        pages, and pages that land on the homepage or an already crawled URL,
        are left out.
        """
        if not targets:
            return []

        slots: List[Optional[Tuple[PageSignals, str]]] = [None] * len(targets)
        limiter = asyncio.Semaphore(self.settings.crawl_concurrency)
        finished = 0

        def may_follow(url: str) -> bool:
            if not is_same_site(url, self.config.url, self.config.include_subdomains):
                return False
            if not is_allowed(url, disallowed):
                logger.info(f"Not following redirect to {url}: disallowed by robots.txt")
                return False
            return True

        async def crawl_one(index: int, url: str) -> None:
            nonlocal finished
            try:
                async with limiter:
                    self.cancel.raise_if_cancelled(StageId.CRAWL)
                    try:
                        response = await self.fetcher.fetch(url, allow_redirect=may_follow)
                    except FetchError as e:
                        logger.warning(f"Failed to crawl {url}: {e.reason}")
                        return
                    if not response.ok:
                        logger.warning(f"Skipping {url}: HTTP {response.status_code}")
                        return
                    signals = extract_signals(
                        response.text, response.final_url, response.status_code
                    ).model_copy(update={"redirect_chain": response.redirect_chain})
                    slots[index] = (signals, response.text)
            finally:
                finished += 1
                self.reporter.progress(
                    StageId.CRAWL,
                    finished * 100 // len(targets),
                    f"Crawled {finished}/{len(targets)}",
                )

        await asyncio.gather(*(crawl_one(i, url) for i, url in enumerate(targets)))
        seen = {normalize_url(home_url)}
        crawled: List[Tuple[PageSignals, str]] = []
        for slot in slots:
            if slot is None:
                continue
            final = normalize_url(slot[0].url)
            if final in seen:
                logger.info(f"Skipping {final}: already crawled")
                continue
            seen.add(final)
            crawled.append(slot)
        return crawled

    async def measure_performance(self) -> List[PerformanceReport]:
        strategies = []
        if self.config.check_mobile:
            strategies.append("mobile")
        if self.config.check_desktop:
            strategies.append("desktop")
        reports = await asyncio.gather(
            *(
                fetch_pagespeed(self.fetcher, self.config.url, s, self.settings.pagespeed_api_key)
                for s in strategies
            )
        )
        return list(reports)


class SiteAuditor:
    """
    Runs the full analysis for one AnalysisConfig.

    Usage:
        auditor = SiteAuditor(Settings.from_env())
        result = await auditor.analyze(config, reporter=StageReporter())
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or Settings()
        self._transport = transport

    async def analyze(
        self,
        config: AnalysisConfig,
        reporter: Optional[StageReporter] = None,
        cancel: Optional[CancelToken] = None,
    ) -> AnalysisResult:
        """
        Run every stage and return the result.

        Raises:
            AuditError: invalid target, homepage failure or run deadline.
            AnalysisCancelled: the cancel token was raised before completion.
        """
        reporter = reporter or StageReporter()
        cancel = cancel or CancelToken()
        started_at = datetime.now()

        async with Fetcher(self.settings, transport=self._transport) as fetcher:
            run = _AuditRun(config, self.settings, fetcher, reporter, cancel)
            task = asyncio.ensure_future(self._guarded(run, started_at))
            watcher = asyncio.ensure_future(cancel.wait())
            try:
                done, _ = await asyncio.wait(
                    {task, watcher},
                    timeout=self.settings.run_timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                watcher.cancel()

            if task in done:
                return task.result()

            # Cancelled or out of time: abandon in-flight work.
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            if cancel.cancelled:
                logger.info(f"Analysis of {config.url} cancelled")
                if run.stage is not None:
                    reporter.fail(run.stage, "Analysis cancelled")
                raise AnalysisCancelled(run.stage)

            error = AnalysisTimeout(self.settings.run_timeout, run.stage)
            logger.error(f"Analysis of {config.url} failed: {error.message}")
            if run.stage is not None:
                reporter.fail(run.stage, error.message)
            raise error

    async def _guarded(self, run: _AuditRun, started_at: datetime) -> AnalysisResult:
        """execute() with stage-level error reporting."""
        try:
            run.enter(StageId.VALIDATE)
            validate_target(run.config.url)
            run.reporter.complete(StageId.VALIDATE)
            result = await run.execute(started_at)
        except AnalysisCancelled as e:
            run.reporter.fail(e.stage or run.stage or StageId.VALIDATE, "Analysis cancelled")
            raise
        except AuditError as e:
            run.reporter.fail(e.stage or run.stage or StageId.VALIDATE, e.message)
            raise
        except Exception as e:
            if run.stage is not None:
                run.reporter.fail(run.stage, str(e) or e.__class__.__name__)
            raise
        logger.info(
            f"Analysis of {run.config.url} complete: score {result.score}/100, "
            f"{result.summary.total_issues} issue(s), {result.summary.pages_analyzed} page(s)"
        )
        return result


async def run_analysis(
    config: AnalysisConfig,
    settings: Optional[Settings] = None,
    reporter: Optional[StageReporter] = None,
    cancel: Optional[CancelToken] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AnalysisOutcome:
    """
    Run an analysis and fold every ending into an AnalysisOutcome.

    Never raises for audit failures: complete, cancelled and error are all
    reported through `outcome.status`.
    """
    reporter = reporter or StageReporter()
    auditor = SiteAuditor(settings, transport=transport)
    try:
        result = await auditor.analyze(config, reporter=reporter, cancel=cancel)
    except AnalysisCancelled as e:
        return AnalysisOutcome(
            status=OutcomeStatus.CANCELLED, error=str(e), stages=reporter.snapshot()
        )
    except AuditError as e:
        logger.error(f"Analysis failed: {e.message}")
        return AnalysisOutcome(status=OutcomeStatus.ERROR, error=e.message, stages=reporter.snapshot())
    except Exception as e:
        logger.error(f"Analysis crashed: {e}", exc_info=True)
        return AnalysisOutcome(
            status=OutcomeStatus.ERROR, error=str(e) or e.__class__.__name__, stages=reporter.snapshot()
        )
    finally:
        reporter.close()
    return AnalysisOutcome(status=OutcomeStatus.COMPLETE, result=result, stages=reporter.snapshot())
