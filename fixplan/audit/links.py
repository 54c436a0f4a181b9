"""
Internal link discovery.

Collects the same-origin URLs a page links to, so the orchestrator knows
what else to crawl.
"""

from typing import Optional, Set
from urllib.parse import urljoin, urlparse, urlunparse

from lxml.html import HtmlElement

from .extractor import _parse_html

_SKIPPED_PREFIXES = ("#", "javascript:", "mailto:", "tel:")


def normalize_url(url: str) -> str:
    """Lower-case scheme/host, drop the fragment, default an empty path to '/'."""
    parsed = urlparse(url)
    path = parsed.path or "/"
    return urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, "")
    )


def _host_matches(host: str, base_host: str, include_subdomains: bool) -> bool:
    if host == base_host:
        return True
    if not include_subdomains:
        return False
    root = base_host[4:] if base_host.startswith("www.") else base_host
    return host == root or host.endswith("." + root)


def is_same_site(url: str, base_url: str, include_subdomains: bool = False) -> bool:
    """Whether `url` is an http(s) URL on the base URL's host (or a subdomain of it)."""
    try:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    base_host = (urlparse(base_url).hostname or "").lower()
    return _host_matches(host, base_host, include_subdomains)


def discover_internal_links(
    html: str,
    base_url: str,
    include_subdomains: bool = False,
    tree: Optional[HtmlElement] = None,
) -> Set[str]:
    """
    Same-origin http(s) URLs linked from a page.

    Args:
        html: Raw page HTML.
        base_url: URL of the page; relative hrefs resolve against it.
        include_subdomains: Also accept hosts under the base host's domain.
        tree: Already-parsed document, to skip a second parse.

    Returns:
        Normalised, fragment-free, deduplicated URLs.
    """
    if tree is None:
        tree = _parse_html(html)
    if tree is None:
        return set()

    base_host = (urlparse(base_url).hostname or "").lower()
    urls: Set[str] = set()

    for href in tree.xpath("//a/@href"):
        href = href.strip()
        if not href or href.lower().startswith(_SKIPPED_PREFIXES):
            continue
        try:
            absolute = urljoin(base_url, href)
            parsed = urlparse(absolute)
            host = (parsed.hostname or "").lower()
        except ValueError:
            continue
        if parsed.scheme not in ("http", "https"):
            continue
        if not _host_matches(host, base_host, include_subdomains):
            continue
        urls.add(normalize_url(absolute))

    return urls
