"""
End-to-end tests for the analysis pipeline.

Most runs go against the local site fixture over real sockets; the
PageSpeed run swaps in an httpx.MockTransport so no request leaves the
machine.
"""

import json
import time

import httpx
import pytest

from fixplan.audit import (
    AnalysisConfig,
    CancelToken,
    CheckCategory,
    OutcomeStatus,
    StageId,
    StageReporter,
    StageStatus,
    run_analysis,
)
from fixplan.audit.errors import InvalidTargetError
from fixplan.audit.orchestrator import validate_target
from fixplan.config import Settings

from conftest import build_page

SETTINGS = Settings(request_timeout=5, reference_competitor="")
ROBOTS = "User-agent: *\nDisallow: /private\n"


def _stage(outcome, stage_id):
    return next(e for e in outcome.stages if e.stage_id == stage_id)


def _issue_ids(outcome):
    return [i.id for i in outcome.result.issues]


def _serve_site(site, links, robots=ROBOTS, **home_kwargs):
    site.add("/", build_page(links=links, **home_kwargs))
    if robots is not None:
        site.add("/robots.txt", robots, content_type="text/plain")
    for link in links:
        site.add(link, build_page(links=[]))


class TestValidateTarget:
    def test_accepts_http_and_https(self):
        assert validate_target(" https://example.com ") == "https://example.com"
        assert validate_target("http://example.com/a") == "http://example.com/a"

    @pytest.mark.parametrize("url", ["", "example.com", "ftp://example.com", "https://", "not a url"])
    def test_rejects(self, url):
        with pytest.raises(InvalidTargetError):
            validate_target(url)


@pytest.mark.asyncio
class TestRunAnalysis:
    async def test_full_run(self, site):
        links = ["/about", "/services", "/pricing", "/blog", "/contact", "/private/admin"]
        _serve_site(site, links)

        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS)

        assert outcome.status == OutcomeStatus.COMPLETE
        assert outcome.error is None
        result = outcome.result
        assert result.robots.found
        assert "/private/admin" not in site.hits
        assert sorted(p.url for p in result.pages) == sorted(site.url + l for l in links[:-1])
        assert result.summary.pages_analyzed == 1 + len(result.pages) == 6
        # The local site is served over plain http
        assert "no-https" in _issue_ids(outcome)
        assert result.score == 100 - sum(b.deductions for b in result.score_breakdown)
        assert result.completed_at >= result.started_at
        ranks = [i.severity.rank for i in result.issues]
        assert ranks == sorted(ranks)

        statuses = {e.stage_id: e.status for e in outcome.stages}
        assert statuses.pop(StageId.PERFORMANCE) == StageStatus.SKIPPED
        assert set(statuses.values()) == {StageStatus.COMPLETE}

    async def test_result_carries_no_markup(self, site):
        _serve_site(site, ["/about"])
        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS)
        payload = json.dumps(outcome.to_payload())
        assert "<!DOCTYPE html>" not in payload
        assert outcome.to_payload()["status"] == "complete"

    async def test_missing_robots_does_not_stop_crawl(self, site):
        """Without robots.txt the conventional sitemap locations are tried and crawled."""
        _serve_site(site, ["/about", "/services"], robots=None)
        sitemap = (
            '<?xml version="1.0"?><urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            f"<url><loc>{site.url}/from-fallback</loc></url>"
            "</urlset>"
        )
        site.add("/sitemap.xml", sitemap, content_type="application/xml")
        site.add("/from-fallback", build_page(links=[]))

        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS)

        assert outcome.status == OutcomeStatus.COMPLETE
        result = outcome.result
        assert not result.robots.found
        assert _issue_ids(outcome).count("missing-robots-txt") == 1
        assert "/sitemap.xml" in site.hits
        assert "/sitemap_index.xml" in site.hits
        assert [s.url for s in result.sitemaps] == [site.url + "/sitemap.xml"]
        assert sorted(p.url for p in result.pages) == sorted(
            site.url + path for path in ["/about", "/services", "/from-fallback"]
        )

    async def test_redirect_into_disallowed_path_not_followed(self, site):
        _serve_site(site, ["/about"])
        site.add("/", build_page(links=["/about", "/go"]))
        site.add("/go", status=301, location="/private/secret")
        site.add("/private/secret", build_page(links=[]))

        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS)

        assert "/go" in site.hits
        assert "/private/secret" not in site.hits
        assert [p.url for p in outcome.result.pages] == [site.url + "/about"]

    async def test_redirect_off_site_not_followed(self, site):
        _serve_site(site, ["/about"])
        site.add("/", build_page(links=["/about", "/away"]))
        site.add("/away", status=302, location="http://elsewhere.invalid/landing")

        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS)

        assert "/away" in site.hits
        assert [p.url for p in outcome.result.pages] == [site.url + "/about"]

    async def test_redirected_page_recorded_under_final_url(self, site):
        _serve_site(site, [])
        site.add("/", build_page(links=["/old", "/new-home"]))
        site.add("/old", status=301, location="/moved")
        site.add("/moved", build_page(links=[]))
        site.add("/new-home", status=301, location="/moved")

        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS)

        (page,) = outcome.result.pages
        assert page.url == site.url + "/moved"
        assert page.redirect_chain in ([site.url + "/old"], [site.url + "/new-home"])

    async def test_crawl_limit(self, site):
        _serve_site(site, ["/a", "/b", "/c", "/d", "/e", "/f"])
        config = AnalysisConfig(url=site.url + "/", crawl_limit=3)
        outcome = await run_analysis(config, settings=SETTINGS)
        assert len(outcome.result.pages) == 2
        assert outcome.result.summary.pages_analyzed == 3
        assert "/c" not in site.hits

    async def test_page_cap(self, site):
        _serve_site(site, ["/a", "/b", "/c", "/d"])
        settings = Settings(request_timeout=5, reference_competitor="", page_cap=1)
        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=settings)
        assert [p.url for p in outcome.result.pages] == [site.url + "/a"]

    async def test_sitemap_urls_are_crawled(self, site):
        sitemap = (
            '<?xml version="1.0"?><urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            f"<url><loc>{site.url}/from-sitemap</loc></url>"
            "<url><loc>https://elsewhere.example.org/page</loc></url>"
            "</urlset>"
        )
        robots = f"User-agent: *\nSitemap: {site.url}/sitemap-pages.xml\n"
        _serve_site(site, [], robots=robots)
        site.add("/sitemap-pages.xml", sitemap, content_type="application/xml")
        site.add("/from-sitemap", build_page(links=[]))

        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS)

        assert [s.url_count for s in outcome.result.sitemaps] == [2]
        assert [p.url for p in outcome.result.pages] == [site.url + "/from-sitemap"]

    async def test_broken_pages_skipped(self, site):
        _serve_site(site, ["/ok"])
        site.add("/", build_page(links=["/ok", "/missing"]))
        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS)
        assert [p.url for p in outcome.result.pages] == [site.url + "/ok"]
        assert outcome.result.summary.pages_analyzed == 2

    async def test_homepage_redirect_recorded(self, site):
        _serve_site(site, ["/about"])
        site.add("/start", status=301, location="/")
        outcome = await run_analysis(AnalysisConfig(url=site.url + "/start"), settings=SETTINGS)
        home = outcome.result.homepage
        assert home.url == site.url + "/"
        assert home.redirect_chain == [site.url + "/start"]

    async def test_homepage_error(self, site):
        site.add("/", "boom", status=500)
        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS)
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.error == "Failed to fetch URL: HTTP 500"
        assert outcome.result is None
        assert _stage(outcome, StageId.HOMEPAGE).status == StageStatus.ERROR
        assert _stage(outcome, StageId.ROBOTS).status == StageStatus.PENDING

    async def test_invalid_url(self):
        outcome = await run_analysis(AnalysisConfig(url="not a url"), settings=SETTINGS)
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.error == "Invalid URL format"
        assert _stage(outcome, StageId.VALIDATE).status == StageStatus.ERROR

    async def test_cancel_mid_crawl(self, site):
        """Cancelling after the first crawled page ends the run without a result."""
        _serve_site(site, ["/a-fast"])
        for path in ("/b-slow", "/c-slow", "/d-slow"):
            site.add(path, build_page(links=[]), delay=3.0)
        site.add("/", build_page(links=["/a-fast", "/b-slow", "/c-slow", "/d-slow"]))

        cancel = CancelToken()
        reporter = StageReporter()

        def on_event(event):
            if event.stage_id == StageId.CRAWL and event.status == StageStatus.RUNNING and event.progress:
                cancel.cancel()

        reporter.add_listener(on_event)
        settings = Settings(request_timeout=10, reference_competitor="", crawl_concurrency=1)

        started = time.monotonic()
        outcome = await run_analysis(
            AnalysisConfig(url=site.url + "/"), settings=settings, reporter=reporter, cancel=cancel
        )

        assert time.monotonic() - started < 2.5
        assert outcome.status == OutcomeStatus.CANCELLED
        assert outcome.error == "Analysis cancelled"
        assert outcome.result is None
        assert _stage(outcome, StageId.CRAWL).status == StageStatus.ERROR
        assert _stage(outcome, StageId.SCORE).status == StageStatus.PENDING

    async def test_cancel_before_start(self, site):
        _serve_site(site, [])
        cancel = CancelToken()
        cancel.cancel()
        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=SETTINGS, cancel=cancel)
        assert outcome.status == OutcomeStatus.CANCELLED
        assert "/" not in site.hits

    async def test_run_timeout(self, site):
        site.add("/", build_page(), delay=3.0)
        settings = Settings(request_timeout=10, reference_competitor="", run_timeout=0.5)
        outcome = await run_analysis(AnalysisConfig(url=site.url + "/"), settings=settings)
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.error == "Analysis timed out after 0.5s"
        assert _stage(outcome, StageId.HOMEPAGE).status == StageStatus.ERROR

    async def test_deselected_categories(self, site):
        _serve_site(site, ["/about"])
        config = AnalysisConfig(url=site.url + "/", selected_categories=[CheckCategory.HEADINGS])
        outcome = await run_analysis(config, settings=SETTINGS)
        assert outcome.result.issues == []
        assert outcome.result.score == 100

    async def test_reputation_advisory(self, site):
        _serve_site(site, ["/about"])
        config = AnalysisConfig(url=site.url + "/", selected_categories=[CheckCategory.REPUTATION])
        outcome = await run_analysis(config, settings=SETTINGS)
        (issue,) = outcome.result.issues
        assert issue.id == "blacklist-check"
        assert issue.affected_urls == ["https://127.0.0.1"]


# ---------------------------------------------------------------------------
# PageSpeed, over a mocked transport
# ---------------------------------------------------------------------------


def _psi_payload(score):
    return {
        "lighthouseResult": {
            "categories": {"performance": {"score": score}},
            "audits": {"largest-contentful-paint": {"numericValue": 4200.0}},
        }
    }


def _mock_handler(scores):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.googleapis.com":
            strategy = request.url.params["strategy"]
            return httpx.Response(200, json=_psi_payload(scores[strategy]))
        if request.url.path == "/":
            return httpx.Response(200, text=build_page(links=[]), headers={"Content-Type": "text/html"})
        if request.url.path == "/robots.txt":
            return httpx.Response(200, text="User-agent: *\n", headers={"Content-Type": "text/plain"})
        return httpx.Response(404, text="")

    return handler


@pytest.mark.asyncio
class TestPerformanceStage:
    async def test_pagespeed_reports(self):
        transport = httpx.MockTransport(_mock_handler({"mobile": 0.42, "desktop": 0.93}))
        config = AnalysisConfig(
            url="https://example.com/",
            use_psi=True,
            selected_categories=[CheckCategory.PERFORMANCE],
        )
        outcome = await run_analysis(config, settings=SETTINGS, transport=transport)

        assert outcome.status == OutcomeStatus.COMPLETE
        reports = {r.strategy: r for r in outcome.result.performance}
        assert reports["mobile"].score == 42
        assert reports["desktop"].score == 93
        assert reports["mobile"].metrics["largest_contentful_paint_ms"] == 4200.0
        assert [i.id for i in outcome.result.issues] == ["slow-page-speed"]
        assert _stage(outcome, StageId.PERFORMANCE).status == StageStatus.COMPLETE

    async def test_skipped_without_psi(self):
        transport = httpx.MockTransport(_mock_handler({"mobile": 0.1, "desktop": 0.1}))
        outcome = await run_analysis(
            AnalysisConfig(url="https://example.com/"), settings=SETTINGS, transport=transport
        )
        assert outcome.result.performance == []
        assert _stage(outcome, StageId.PERFORMANCE).status == StageStatus.SKIPPED
        assert "no-https" not in [i.id for i in outcome.result.issues]

    async def test_mobile_only(self):
        transport = httpx.MockTransport(_mock_handler({"mobile": 0.95, "desktop": 0.1}))
        config = AnalysisConfig(url="https://example.com/", use_psi=True, check_desktop=False)
        outcome = await run_analysis(config, settings=SETTINGS, transport=transport)
        assert [r.strategy for r in outcome.result.performance] == ["mobile"]
        assert "slow-page-speed" not in [i.id for i in outcome.result.issues]
