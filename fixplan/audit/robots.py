"""
robots.txt and sitemap discovery.

Both fetchers are degraded-mode by contract: any HTTP or transport failure is
recorded in the returned record's `errors` and never raised, because a
missing robots.txt is an audit finding, not a reason to stop.
"""

import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from ..fetcher import Fetcher, FetchError
from .models import RobotsInfo, SitemapInfo

logger = logging.getLogger(__name__)

MAX_SITEMAPS = 3
MAX_SITEMAP_URLS_KEPT = 50

_LOC_RE = re.compile(r"<loc>\s*([^<]+?)\s*</loc>", re.IGNORECASE)


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def parse_robots(content: str) -> Tuple[List[str], List[str]]:
    """
    Extract (sitemap_urls, disallowed_paths) from robots.txt text.

    Directives are matched line by line with a case-insensitive prefix.
    Disallow rules are collected from every user-agent group; the crawler
    treats them all as binding for itself.
    """
    sitemaps: List[str] = []
    disallowed: List[str] = []
    for line in content.splitlines():
        line = line.split("#", 1)[0].strip()
        lowered = line.lower()
        if lowered.startswith("sitemap:"):
            value = line[len("sitemap:"):].strip()
            if value:
                sitemaps.append(value)
        elif lowered.startswith("disallow:"):
            value = line[len("disallow:"):].strip()
            if value:
                disallowed.append(value)
    return sitemaps, disallowed


async def fetch_robots(fetcher: Fetcher, base_url: str) -> RobotsInfo:
    robots_url = f"{_origin(base_url)}/robots.txt"
    try:
        response = await fetcher.fetch(robots_url)
    except FetchError as e:
        logger.warning(f"robots.txt fetch failed for {robots_url}: {e.reason}")
        return RobotsInfo(found=False, errors=[e.reason])

    if not response.ok:
        logger.info(f"robots.txt returned status {response.status_code}")
        return RobotsInfo(
            found=False, errors=[f"robots.txt returned status {response.status_code}"]
        )

    sitemaps, disallowed = parse_robots(response.text)
    return RobotsInfo(
        found=True,
        content=response.text,
        sitemap_urls=sitemaps,
        disallowed_paths=disallowed,
    )


def count_sitemap_urls(content: str) -> Tuple[int, List[str]]:
    """(number of <loc> entries, first few of their values)."""
    locs = _LOC_RE.findall(content)
    return len(locs), locs[:MAX_SITEMAP_URLS_KEPT]


async def fetch_sitemap(fetcher: Fetcher, url: str) -> SitemapInfo:
    """
    Fetch one sitemap and count its <loc> entries.

    Sitemap indexes are counted as-is (their <loc> entries are child
    sitemaps); they are not followed.
    """
    try:
        response = await fetcher.fetch(url)
    except FetchError as e:
        logger.warning(f"Sitemap fetch failed for {url}: {e.reason}")
        return SitemapInfo(url=url, errors=[e.reason])

    if not response.ok:
        return SitemapInfo(url=url, errors=[f"Sitemap returned status {response.status_code}"])

    count, urls = count_sitemap_urls(response.text)
    return SitemapInfo(url=url, url_count=count, urls=urls)


def sitemap_candidates(
    base_url: str, robots: RobotsInfo, override: Optional[str] = None
) -> List[str]:
    """
    Sitemap URLs to try, best first, bounded to MAX_SITEMAPS.

    An explicit override wins, then Sitemap: lines from robots.txt, else the
    conventional /sitemap.xml and /sitemap_index.xml locations.
    """
    origin = _origin(base_url)
    candidates: List[str] = []
    if override:
        candidates.append(override)
    if robots.sitemap_urls:
        candidates.extend(robots.sitemap_urls)
    else:
        candidates.extend([f"{origin}/sitemap.xml", f"{origin}/sitemap_index.xml"])

    seen = set()
    unique = []
    for url in candidates:
        if url not in seen:
            seen.add(url)
            unique.append(url)
    return unique[:MAX_SITEMAPS]


def _rule_to_regex(rule: str) -> "re.Pattern[str]":
    anchored = rule.endswith("$")
    body = rule[:-1] if anchored else rule
    pattern = ".*".join(re.escape(part) for part in body.split("*"))
    return re.compile("^" + pattern + ("$" if anchored else ""))


def is_allowed(url: str, disallowed: List[str]) -> bool:
    """
    Whether the crawler may fetch `url` under the given Disallow rules.

    Rules are path prefixes; `*` matches any run of characters and a
    trailing `$` anchors the end of the path.
    """
    parsed = urlparse(url)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    for rule in disallowed:
        if not rule.startswith("/") and not rule.startswith("*"):
            rule = "/" + rule
        if _rule_to_regex(rule).match(path):
            return False
    return True
