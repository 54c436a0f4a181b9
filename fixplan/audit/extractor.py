"""
HTML signal extraction.

Turns one page's raw HTML into a PageSignals record. Pure: no network I/O,
no clock, no randomness, so the same bytes always produce the same record.

Every field is extracted independently and best-effort. Markup lxml cannot
parse, a broken JSON-LD block or an odd attribute yields an absent value for
that field only; extract_signals() itself never raises.
"""

import json
import logging
import re
from typing import Any, Callable, List, Optional, Tuple, TypeVar
from urllib.parse import urlparse

from lxml import etree
from lxml import html as lxml_html
from lxml.html import HtmlElement

from .models import JsonLdBlock, MarketingTags, PageSignals

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOCAL_BUSINESS_TYPES = {
    "LocalBusiness",
    "Organization",
    "Store",
    "Restaurant",
    "Hotel",
    "MedicalBusiness",
    "LegalService",
    "RealEstateAgent",
    "FinancialService",
}
PRODUCT_TYPES = {"Product", "ProductGroup", "Offer", "AggregateOffer", "ItemList"}

_EXCLUDED_SCHEMES = ("javascript:", "mailto:", "tel:")

# ─── Marketing fingerprints (raw-text, advisory) ──────────────────────

_GTM_ID_RE = re.compile(r"\bGTM-[A-Z0-9]{4,}\b")
_GTM_SCRIPT = "googletagmanager.com/gtm.js"
_GA4_ID_RE = re.compile(r"\bG-[A-Z0-9]{6,}\b")
_GTAG_SCRIPT = "googletagmanager.com/gtag/js"
_CLARITY_TAG_RE = re.compile(r"clarity\.ms/tag/([a-z0-9]+)", re.IGNORECASE)
_CLARITY_CALL_RE = re.compile(r"clarity\(\s*[\"']set[\"']", re.IGNORECASE)
_ADS_ID_RE = re.compile(r"\bAW-\d+\b")
_ADS_DOUBLECLICK = "googleads.g.doubleclick.net"
_CONVERSION_RE = re.compile(
    r"gtag_report_conversion"
    r"|gtag\(\s*['\"]event['\"]\s*,\s*['\"]conversion['\"]"
    r"|googleadservices\.com/pagead/conversion",
    re.IGNORECASE,
)


def _parse_html(raw_html: str) -> Optional[HtmlElement]:
    """Parse HTML string into an lxml tree, returning None on failure."""
    if not raw_html or not raw_html.strip():
        return None
    try:
        return lxml_html.fromstring(raw_html)
    except ValueError:
        # str input carrying an XML encoding declaration
        try:
            return lxml_html.fromstring(raw_html.encode("utf-8"))
        except (etree.ParserError, ValueError):
            return None
    except etree.ParserError:
        return None


def _safe(fn: Callable[[], T], default: T, field: str) -> T:
    try:
        return fn()
    except Exception as e:
        logger.debug(f"Could not extract {field}: {e}")
        return default


def _attr(el: HtmlElement, name: str) -> str:
    return (el.get(name) or "").strip()


def _meta_content(tree: HtmlElement, attr: str, value: str) -> Optional[str]:
    """Content of the first <meta {attr}="{value}">, matched case-insensitively."""
    for meta in tree.iter("meta"):
        if _attr(meta, attr).lower() == value:
            content = meta.get("content")
            return content.strip() if content is not None else ""
    return None


def _has_meta_prefix(tree: HtmlElement, attrs: Tuple[str, ...], prefix: str) -> bool:
    for meta in tree.iter("meta"):
        for attr in attrs:
            if _attr(meta, attr).lower().startswith(prefix):
                return True
    return False


def _text_nodes(tree: HtmlElement, excluded: Tuple[str, ...]) -> str:
    bodies = tree.xpath("//body")
    if not bodies:
        return ""
    guard = " or ".join(f"ancestor::{tag}" for tag in excluded)
    nodes = bodies[0].xpath(f".//text()[not({guard})]")
    return re.sub(r"\s+", " ", " ".join(nodes)).strip()


# ─── Individual Extractors ────────────────────────────────────────────


def extract_title(tree: HtmlElement) -> Optional[str]:
    titles = tree.xpath("//title")
    if not titles:
        return None
    value = (titles[0].text_content() or "").strip()
    return value or None


def extract_meta_description(tree: HtmlElement) -> Optional[str]:
    return _meta_content(tree, "name", "description") or None


def extract_headings(tree: HtmlElement) -> Tuple[int, Optional[str]]:
    """H1 count and the text of the first H1."""
    h1s = tree.xpath("//h1")
    if not h1s:
        return 0, None
    first = re.sub(r"\s+", " ", h1s[0].text_content() or "").strip()
    return len(h1s), first or None


def extract_canonical(tree: HtmlElement) -> Optional[str]:
    for link in tree.iter("link"):
        rels = _attr(link, "rel").lower().split()
        if "canonical" in rels:
            href = link.get("href")
            if href:
                return href
    return None


def extract_lang(tree: HtmlElement) -> Optional[str]:
    root = tree.getroottree().getroot()
    if root is None or not isinstance(root.tag, str) or root.tag.lower() != "html":
        return None
    return _attr(root, "lang") or None


def extract_word_count(tree: HtmlElement) -> int:
    text = _text_nodes(tree, ("script", "style"))
    return len(text.split(" ")) if text else 0


def extract_links(tree: HtmlElement, page_url: str) -> Tuple[int, int]:
    """
    Count internal and external anchors.

    Root-relative, fragment-only, relative and same-host absolute hrefs are
    internal; cross-host http(s) hrefs are external; javascript:, mailto:
    and tel: links count as neither.
    """
    page_host = (urlparse(page_url).hostname or "").lower()
    internal = 0
    external = 0

    for a in tree.xpath("//a[@href]"):
        href = _attr(a, "href")
        lowered = href.lower()
        if not href or lowered.startswith(_EXCLUDED_SCHEMES):
            continue
        if href.startswith("#") or (href.startswith("/") and not href.startswith("//")):
            internal += 1
            continue

        parsed = urlparse(href if not href.startswith("//") else f"http:{href}")
        if parsed.scheme in ("http", "https"):
            if (parsed.hostname or "").lower() == page_host:
                internal += 1
            else:
                external += 1
        elif not parsed.scheme:
            internal += 1

    return internal, external


def extract_images(tree: HtmlElement) -> Tuple[int, int, int]:
    """
    (total, missing_alt, empty_alt).

    Only an <img> with no alt attribute at all counts as missing; alt="" is
    the accepted marker for decorative images and is tallied as empty_alt.
    """
    total = missing = empty = 0
    for img in tree.iter("img"):
        total += 1
        alt = img.get("alt")
        if alt is None:
            missing += 1
        elif not alt.strip():
            empty += 1
    return total, missing, empty


def _collect_types(node: Any, out: List[str]) -> None:
    if isinstance(node, list):
        for item in node:
            _collect_types(item, out)
        return
    if not isinstance(node, dict):
        return

    schema_type = node.get("@type")
    if isinstance(schema_type, str):
        out.append(schema_type)
    elif isinstance(schema_type, list):
        out.extend(t for t in schema_type if isinstance(t, str))

    graph = node.get("@graph")
    if isinstance(graph, list):
        for entry in graph:
            _collect_types(entry, out)


def extract_json_ld(tree: HtmlElement) -> List[JsonLdBlock]:
    blocks: List[JsonLdBlock] = []
    for script in tree.iter("script"):
        if _attr(script, "type").lower() != "application/ld+json":
            continue
        raw = (script.text or "").strip()
        try:
            data = json.loads(raw)
        except ValueError as e:
            blocks.append(JsonLdBlock(index=len(blocks), ok=False, error=f"Invalid JSON-LD: {e}"))
            continue
        types: List[str] = []
        _collect_types(data, types)
        blocks.append(JsonLdBlock(index=len(blocks), ok=True, types=types))
    return blocks


def parse_json_ld(raw_html: str) -> List[JsonLdBlock]:
    """Parse every JSON-LD block of a document; one result per block."""
    tree = _parse_html(raw_html)
    if tree is None:
        return []
    return _safe(lambda: extract_json_ld(tree), [], "json-ld")


def is_local_business_type(schema_type: str) -> bool:
    return "LocalBusiness" in schema_type or schema_type in LOCAL_BUSINESS_TYPES


def is_product_type(schema_type: str) -> bool:
    return schema_type in PRODUCT_TYPES


def detect_marketing_tags(
    raw_html: str, tree: Optional[HtmlElement], schema_types: List[str]
) -> MarketingTags:
    """
    Fingerprint marketing tooling from raw markup.

    Each detector is an independent string test, so a hit only means the
    snippet is present, not that the tool is configured correctly.
    """
    gtm = _GTM_ID_RE.search(raw_html)
    has_gtm = bool(gtm) or _GTM_SCRIPT in raw_html

    ga4 = _GA4_ID_RE.search(raw_html)
    has_ga4 = bool(ga4) or _GTAG_SCRIPT in raw_html

    gsc = _meta_content(tree, "name", "google-site-verification") if tree is not None else None

    clarity = _CLARITY_TAG_RE.search(raw_html)
    has_clarity = bool(clarity) or bool(_CLARITY_CALL_RE.search(raw_html))

    ads = _ADS_ID_RE.search(raw_html)
    has_ads = bool(ads) or _ADS_DOUBLECLICK in raw_html

    has_local = any(is_local_business_type(t) for t in schema_types)
    has_product = any(is_product_type(t) for t in schema_types)

    return MarketingTags(
        has_gtm=has_gtm,
        gtm_id=gtm.group(0) if gtm else None,
        has_ga4=has_ga4,
        ga4_id=ga4.group(0) if ga4 else None,
        has_search_console_verification=gsc is not None,
        search_console_method="meta-tag" if gsc is not None else None,
        has_clarity=has_clarity,
        clarity_id=clarity.group(1) if clarity else None,
        has_google_ads_tag=has_ads,
        google_ads_id=ads.group(0) if ads else None,
        has_google_ads_conversion=bool(_CONVERSION_RE.search(raw_html)),
        has_local_business_schema=has_local,
        has_product_schema=has_product,
        has_merchant_center_link=has_product and (has_gtm or has_ga4),
    )


# ─── Main Entry Points ────────────────────────────────────────────────


def extract_signals(raw_html: str, page_url: str, status_code: int = 200) -> PageSignals:
    """
    Build the PageSignals record for one fetched page.

    Args:
        raw_html: The full HTML document as fetched.
        page_url: URL the document was fetched from (link classification).
        status_code: Final HTTP status of the fetch.
    """
    raw_html = raw_html or ""
    tree = _parse_html(raw_html)
    if tree is None:
        return PageSignals(
            url=page_url,
            status_code=status_code,
            marketing=_safe(lambda: detect_marketing_tags(raw_html, None, []), MarketingTags(), "marketing"),
        )

    title = _safe(lambda: extract_title(tree), None, "title")
    description = _safe(lambda: extract_meta_description(tree), None, "meta description")
    h1_count, h1_text = _safe(lambda: extract_headings(tree), (0, None), "headings")
    lang = _safe(lambda: extract_lang(tree), None, "lang")
    internal, external = _safe(lambda: extract_links(tree, page_url), (0, 0), "links")
    total_images, missing_alt, empty_alt = _safe(lambda: extract_images(tree), (0, 0, 0), "images")
    blocks = _safe(lambda: extract_json_ld(tree), [], "json-ld")
    schema_types = [t for block in blocks for t in block.types]

    return PageSignals(
        url=page_url,
        status_code=status_code,
        title=title,
        title_length=len(title) if title else None,
        meta_description=description,
        meta_description_length=len(description) if description else None,
        h1_count=h1_count,
        h1_text=h1_text,
        canonical=_safe(lambda: extract_canonical(tree), None, "canonical"),
        meta_robots=_safe(lambda: _meta_content(tree, "name", "robots") or None, None, "meta robots"),
        has_viewport=_safe(lambda: _meta_content(tree, "name", "viewport") is not None, False, "viewport"),
        has_lang=lang is not None,
        lang_value=lang,
        has_open_graph=_safe(lambda: _has_meta_prefix(tree, ("property",), "og:"), False, "open graph"),
        has_twitter_cards=_safe(
            lambda: _has_meta_prefix(tree, ("name", "property"), "twitter:"), False, "twitter cards"
        ),
        has_json_ld=bool(blocks),
        json_ld_types=schema_types,
        json_ld_blocks_total=len(blocks),
        json_ld_blocks_parsed=sum(1 for b in blocks if b.ok),
        word_count=_safe(lambda: extract_word_count(tree), 0, "word count"),
        internal_links=internal,
        external_links=external,
        total_images=total_images,
        images_without_alt=missing_alt,
        images_empty_alt=empty_alt,
        marketing=_safe(
            lambda: detect_marketing_tags(raw_html, tree, schema_types), MarketingTags(), "marketing"
        ),
    )


def extract_body_text(raw_html: str) -> str:
    """
    Visible body copy for keyword analysis.

    Drops script, style and the nav/header/footer chrome so menus don't
    dominate keyword counts.
    """
    tree = _parse_html(raw_html or "")
    if tree is None:
        return ""
    return _safe(
        lambda: _text_nodes(tree, ("script", "style", "nav", "header", "footer")), "", "body text"
    )
