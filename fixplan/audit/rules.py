"""
Fix-plan rule catalogue.

Each rule is an independent predicate over the signals gathered in one run
(homepage, crawled pages, robots.txt, keyword analysis, PageSpeed reports).
A rule that fires returns exactly one Issue carrying its remediation text;
rules never read each other's output, so evaluation order only determines
the order of the issue list.
"""

from dataclasses import dataclass, field
from typing import Callable, List, NamedTuple, Optional
from urllib.parse import urlparse

from .models import (
    AnalysisConfig,
    Category,
    CheckCategory,
    Issue,
    KeywordAnalysis,
    PageSignals,
    PerformanceReport,
    PlatformFixSteps,
    RobotsInfo,
    Severity,
    StageId,
)
from .reputation import ReputationReport

TITLE_MIN, TITLE_MAX = 30, 60
DESCRIPTION_MIN, DESCRIPTION_MAX = 120, 160
MIN_INTERNAL_LINKS = 5
MIN_WORD_COUNT = 300
MIN_KEYWORD_PROMINENCE = 30
MIN_KEYWORD_GAPS = 5
GOOD_SPEED_SCORE = 90
POOR_SPEED_SCORE = 50
BLACKLIST_SNIPPETS = 10


@dataclass
class RuleContext:
    """Everything a rule may look at. Built once per stage by the orchestrator."""

    config: AnalysisConfig
    homepage: PageSignals
    pages: List[PageSignals] = field(default_factory=list)
    robots: RobotsInfo = field(default_factory=RobotsInfo)
    keyword_analysis: Optional[KeywordAnalysis] = None
    performance: List[PerformanceReport] = field(default_factory=list)
    reputation: Optional[ReputationReport] = None


class Rule(NamedTuple):
    id: str
    stage: StageId
    # None: not user-toggleable, gated on its input being present instead
    check_category: Optional[CheckCategory]
    evaluate: Callable[[RuleContext], Optional[Issue]]


# ─── On-page ──────────────────────────────────────────────────────────


def _check_missing_meta_description(ctx: RuleContext) -> Optional[Issue]:
    home_missing = not ctx.homepage.meta_description
    pages_missing = [p for p in ctx.pages if not p.meta_description]
    if not home_missing and not pages_missing:
        return None

    evidence = []
    affected = []
    if home_missing:
        evidence.append("Homepage has no meta description tag")
        affected.append(ctx.homepage.url)
    if pages_missing:
        evidence.append(f"{len(pages_missing)} page(s) missing descriptions")
        affected.extend(p.url for p in pages_missing)

    return Issue(
        id="missing-meta-description",
        title="Missing or empty meta description",
        severity=Severity.HIGH,
        category=Category.ON_PAGE,
        why_it_matters=(
            "Meta descriptions appear in search results and directly influence "
            "click-through rates. Pages without one show an arbitrary text snippet "
            "instead, which costs clicks and organic traffic."
        ),
        evidence=evidence,
        affected_urls=affected,
        fix_steps=[
            "Step 1: Open the page source or CMS editor",
            "Step 2: Locate the <head> section",
            "Step 3: Add a unique meta description tag for each page",
            "Step 4: Write 150-160 characters that describe the page content",
            "Step 5: Include the primary keyword within the first 120 characters",
            "Step 6: End with a call-to-action or value proposition",
        ],
        platform_fix_steps=PlatformFixSteps(
            wordpress=[
                "Step 1: Install an SEO plugin such as Yoast SEO from Plugins > Add New",
                "Step 2: Edit the page that is missing a description",
                "Step 3: Open the plugin's snippet editor below the content",
                "Step 4: Enter a 150-160 character description and click Update",
            ],
            shopify=[
                "Step 1: Go to Online Store > Pages (or Products)",
                "Step 2: Open the page and scroll to 'Search engine listing preview'",
                "Step 3: Click 'Edit website SEO' and fill in the Description field",
                "Step 4: Save and allow 24-48 hours for re-indexing",
            ],
            webflow=[
                "Step 1: Open the project in the Webflow Designer",
                "Step 2: Open Page Settings from the Pages panel",
                "Step 3: Fill in 'Meta Description' under SEO Settings",
                "Step 4: Save and publish",
            ],
            custom=[
                "Step 1: Open the HTML template in a code editor",
                'Step 2: Add <meta name="description" content="..."> inside <head>',
                "Step 3: Make the description unique per page",
                "Step 4: Deploy and clear any server or CDN cache",
            ],
        ),
        snippets=[
            '<meta name="description" content="Your compelling page description here. '
            'Keep it under 160 characters and include your main keyword.">'
        ],
        verify_steps=[
            'Step 1: View page source and search for "description"',
            "Step 2: Use Search Console URL Inspection to check the indexed description",
        ],
        mistakes_to_avoid=[
            "Do not copy the same description to multiple pages",
            "Do not stuff keywords unnaturally",
            "Do not exceed 160 characters; the rest gets truncated",
        ],
    )


def _check_title_length(ctx: RuleContext) -> Optional[Issue]:
    home = ctx.homepage
    if not home.title_length or TITLE_MIN <= home.title_length <= TITLE_MAX:
        return None
    return Issue(
        id="title-length",
        title="Title tag too short" if home.title_length < TITLE_MIN else "Title tag too long",
        severity=Severity.MEDIUM,
        category=Category.ON_PAGE,
        why_it_matters=(
            f"Title tags should be between {TITLE_MIN}-{TITLE_MAX} characters. Too short "
            "loses keyword opportunity; too long gets truncated in search results."
        ),
        evidence=[f'Homepage title is {home.title_length} characters: "{home.title}"'],
        affected_urls=[home.url],
        fix_steps=[
            f"Adjust the title to be between {TITLE_MIN}-{TITLE_MAX} characters",
            "Put the primary keyword near the beginning",
            "Make it descriptive and compelling",
        ],
        verify_steps=["Check the page source for the updated <title> tag"],
    )


def _check_h1_issues(ctx: RuleContext) -> Optional[Issue]:
    home = ctx.homepage
    bad_pages = [p for p in ctx.pages if p.h1_count != 1]
    if home.h1_count == 1 and not bad_pages:
        return None

    if home.h1_count == 0:
        title = "Missing H1 heading"
        evidence = ["Homepage has no H1 tag"]
    elif home.h1_count > 1:
        title = "Multiple H1 headings detected"
        evidence = [f"Homepage has {home.h1_count} H1 tags"]
    else:
        title = "H1 issues on internal pages"
        evidence = []
    if bad_pages:
        evidence.append(f"{len(bad_pages)} internal page(s) have H1 issues")

    affected = [home.url] if home.h1_count != 1 else []
    affected.extend(p.url for p in bad_pages)

    return Issue(
        id="h1-issues",
        title=title,
        severity=Severity.HIGH,
        category=Category.ON_PAGE,
        why_it_matters=(
            "Each page should have exactly one H1 heading naming its main topic. "
            "Missing or multiple H1s blur what the page is about."
        ),
        evidence=evidence,
        affected_urls=affected,
        fix_steps=[
            "Ensure exactly one H1 tag per page",
            "Place the H1 near the top of the main content",
            "Include the primary keyword in the H1",
        ],
        verify_steps=["Inspect the page source for <h1> tags", "Confirm only one H1 exists"],
    )


def _check_missing_open_graph(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.has_open_graph:
        return None
    return Issue(
        id="missing-og",
        title="Missing Open Graph meta tags",
        severity=Severity.LOW,
        category=Category.ON_PAGE,
        why_it_matters=(
            "Open Graph tags control how a page looks when shared on social media. "
            "Without them, shares may render with no image or the wrong text."
        ),
        evidence=["No Open Graph (og:) meta tags found"],
        affected_urls=[ctx.homepage.url],
        fix_steps=["Add og:title, og:description, og:image and og:url tags"],
        snippets=[
            '<meta property="og:title" content="Your Page Title">',
            '<meta property="og:description" content="Description for social sharing">',
            '<meta property="og:image" content="https://example.com/image.jpg">',
            f'<meta property="og:url" content="{ctx.homepage.url}">',
        ],
        verify_steps=["Use the Facebook Sharing Debugger to test the page"],
    )


def _check_meta_description_length(ctx: RuleContext) -> Optional[Issue]:
    home = ctx.homepage
    length = home.meta_description_length
    if not home.meta_description or length is None:
        return None
    if DESCRIPTION_MIN <= length <= DESCRIPTION_MAX:
        return None
    return Issue(
        id="meta-description-length",
        title="Meta description too short" if length < DESCRIPTION_MIN else "Meta description too long",
        severity=Severity.LOW,
        category=Category.ON_PAGE,
        why_it_matters=(
            f"Meta descriptions should be {DESCRIPTION_MIN}-{DESCRIPTION_MAX} characters. "
            "Too short wastes the snippet; too long gets truncated."
        ),
        evidence=[f"Homepage meta description is {length} characters"],
        affected_urls=[home.url],
        fix_steps=[
            "Step 1: Review the current meta description",
            f"Step 2: Rewrite it to {DESCRIPTION_MIN}-{DESCRIPTION_MAX} characters",
            "Step 3: Keep the primary keyword in the first 120 characters",
        ],
        verify_steps=["Step 1: Check the description length with a character counter"],
    )


def _check_missing_twitter_cards(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.has_twitter_cards:
        return None
    return Issue(
        id="missing-twitter-cards",
        title="Missing Twitter Card meta tags",
        severity=Severity.LOW,
        category=Category.ON_PAGE,
        why_it_matters=(
            "Twitter Cards control how a page appears when shared on Twitter/X. "
            "Without them, shares display a plain, poorly formatted preview."
        ),
        evidence=["No Twitter Card (twitter:) meta tags found"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Add a twitter:card meta tag (summary_large_image recommended)",
            "Step 2: Add twitter:title and twitter:description",
            "Step 3: Add twitter:image with a high-quality image URL",
        ],
        snippets=[
            '<meta name="twitter:card" content="summary_large_image">',
            '<meta name="twitter:title" content="Your Page Title">',
            '<meta name="twitter:description" content="Description for Twitter shares">',
            '<meta name="twitter:image" content="https://example.com/image.jpg">',
        ],
        verify_steps=["Step 1: Preview the page with a Twitter Card validator"],
    )


def _check_images_missing_alt(ctx: RuleContext) -> Optional[Issue]:
    pages = [ctx.homepage] + list(ctx.pages)
    total = sum(p.images_without_alt for p in pages)
    if total == 0:
        return None
    return Issue(
        id="images-missing-alt",
        title="Images missing alt text",
        severity=Severity.MEDIUM,
        category=Category.IMAGES,
        why_it_matters=(
            "Alt text tells search engines what an image shows and is essential "
            "for screen readers."
        ),
        evidence=[f"{total} images found without alt attributes"],
        affected_urls=[p.url for p in pages if p.images_without_alt],
        fix_steps=[
            "Add descriptive alt text to every meaningful image",
            'Use an empty alt="" for purely decorative images',
        ],
        snippets=['<img src="product.jpg" alt="Blue running shoes, side view">'],
        verify_steps=["Audit all <img> tags for an alt attribute"],
    )


def _check_missing_structured_data(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.has_json_ld:
        return None
    return Issue(
        id="missing-structured-data",
        title="No structured data detected",
        severity=Severity.LOW,
        category=Category.STRUCTURED_DATA,
        why_it_matters=(
            "Structured data helps search engines understand the page and can "
            "enable rich results in search listings."
        ),
        evidence=["No JSON-LD structured data found"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Add Organization or WebSite schema to the homepage",
            "Validate it with the Google Rich Results Test",
        ],
        snippets=[
            '<script type="application/ld+json">\n'
            "{\n"
            '  "@context": "https://schema.org",\n'
            '  "@type": "Organization",\n'
            '  "name": "Your Company",\n'
            f'  "url": "{ctx.homepage.url}"\n'
            "}\n"
            "</script>"
        ],
        verify_steps=["Use the Google Rich Results Test"],
    )


def _check_low_internal_links(ctx: RuleContext) -> Optional[Issue]:
    home = ctx.homepage
    if home.internal_links >= MIN_INTERNAL_LINKS:
        return None
    return Issue(
        id="low-internal-links",
        title="Low internal link count on homepage",
        severity=Severity.MEDIUM,
        category=Category.INTERNAL_LINKING,
        why_it_matters=(
            "Internal links let crawlers discover content and spread link equity. "
            "Pages that are rarely linked tend to be poorly indexed."
        ),
        evidence=[f"Homepage has only {home.internal_links} internal links"],
        affected_urls=[home.url],
        fix_steps=[
            "Step 1: Identify the most important pages (products, services, key content)",
            "Step 2: Link to them from the homepage content",
            'Step 3: Use descriptive anchor text, not "click here"',
            "Step 4: Make sure the navigation menu covers every main section",
            "Step 5: Add key page links to the footer",
        ],
        platform_fix_steps=PlatformFixSteps(
            wordpress=[
                "Step 1: Edit the homepage and add text links (Ctrl+K)",
                "Step 2: Check Appearance > Menus for navigation links",
                "Step 3: Add a popular/recent posts widget if applicable",
            ],
            shopify=[
                "Step 1: Go to Online Store > Navigation and extend the main menu",
                "Step 2: Add featured collection or product sections to the homepage",
                "Step 3: Add footer links to important pages",
            ],
            custom=[
                'Step 1: Add <a href="/page">descriptive text</a> links to the homepage',
                "Step 2: Make sure navigation includes all major sections",
            ],
        ),
        verify_steps=[
            "Step 1: Count the <a> tags on the homepage in developer tools",
            "Step 2: Confirm every important page is reachable from the homepage",
        ],
    )


def _check_thin_content(ctx: RuleContext) -> Optional[Issue]:
    home = ctx.homepage
    if home.word_count >= MIN_WORD_COUNT:
        return None
    return Issue(
        id="thin-content",
        title="Thin content detected",
        severity=Severity.MEDIUM,
        category=Category.CONTENT,
        why_it_matters=(
            "Pages with little text give users and search engines little to work "
            "with. Aim for at least 300-500 words of unique, useful copy."
        ),
        evidence=[f"Homepage has only {home.word_count} words"],
        affected_urls=[home.url],
        fix_steps=[
            "Step 1: Describe the products or services in more depth",
            "Step 2: Add testimonials, case studies or an FAQ section",
            "Step 3: Structure the copy with headings and bullet points",
            "Step 4: Aim for at least 300-500 words on the homepage",
        ],
        verify_steps=[
            "Step 1: Run a word counter over the visible page copy",
            "Step 2: Confirm the content is unique and reads naturally",
        ],
        mistakes_to_avoid=[
            "Do not add filler text just to raise the word count",
            "Do not hide text with matching foreground and background colours",
        ],
        manual_check_required=True,
    )


def _check_low_keyword_optimization(ctx: RuleContext) -> Optional[Issue]:
    if ctx.keyword_analysis is None:
        return None
    top = ctx.keyword_analysis.site_keywords[:10]
    # Fewer than ten keywords still divides by ten.
    average = sum(k.prominence for k in top) / 10
    if average >= MIN_KEYWORD_PROMINENCE:
        return None
    return Issue(
        id="low-keyword-optimization",
        title="Low keyword optimization detected",
        severity=Severity.MEDIUM,
        category=Category.KEYWORDS,
        why_it_matters=(
            "The site's leading keywords rarely appear in titles, H1s or meta "
            "descriptions, which limits visibility for relevant searches."
        ),
        evidence=[
            f"Average keyword prominence score: {int(average + 0.5)}/100",
            "Top keywords often missing from titles and H1s",
        ],
        fix_steps=[
            "Identify the top 5-10 target keywords",
            "Include the primary keyword in page titles",
            "Use the primary keyword in H1 headings",
            "Work keywords naturally into meta descriptions",
            "Keep keyword density around 1-2% of the body copy",
        ],
        verify_steps=[
            "Check titles contain target keywords",
            "Verify H1 tags include keywords",
        ],
    )


def _check_keyword_gaps(ctx: RuleContext) -> Optional[Issue]:
    analysis = ctx.keyword_analysis
    if analysis is None or len(analysis.keyword_gaps) < MIN_KEYWORD_GAPS:
        return None
    return Issue(
        id="keyword-gaps",
        title=f"{len(analysis.keyword_gaps)} keyword opportunities identified",
        severity=Severity.LOW,
        category=Category.KEYWORDS,
        why_it_matters=(
            "Competitors use keywords this site does not target. Each one is "
            "potential traffic going elsewhere."
        ),
        evidence=[
            f"Top gap keywords: {', '.join(analysis.keyword_gaps[:5])}",
            f"{len(analysis.competitor_analysis)} competitor(s) analyzed",
        ],
        affected_urls=[c.competitor_url for c in analysis.competitor_analysis],
        fix_steps=[
            "Review the suggested keywords",
            "Create content targeting the highest-opportunity keywords",
            "Optimize existing pages for relevant gap keywords",
        ],
        verify_steps=[
            "Track keyword rankings over time",
            "Watch Search Console for new impressions",
        ],
        manual_check_required=True,
    )


# ─── Technical / indexing / security ──────────────────────────────────


def _check_missing_canonical(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.canonical:
        return None
    return Issue(
        id="missing-canonical",
        title="Missing canonical tag",
        severity=Severity.CRITICAL,
        category=Category.INDEXING,
        why_it_matters=(
            "The canonical tag names the preferred URL for a page. Without it, "
            "duplicate URLs can split ranking signals."
        ),
        evidence=["Homepage has no canonical tag"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Add a canonical tag to every indexable page",
            "Self-reference the canonical on unique pages",
            "Use absolute URLs",
        ],
        snippets=[f'<link rel="canonical" href="{ctx.homepage.url}">'],
        verify_steps=["Check the page source for a canonical tag in <head>"],
    )


def _check_missing_robots_txt(ctx: RuleContext) -> Optional[Issue]:
    if ctx.robots.found:
        return None
    return Issue(
        id="missing-robots-txt",
        title="robots.txt file not found",
        severity=Severity.HIGH,
        category=Category.INDEXING,
        why_it_matters=(
            "robots.txt tells crawlers what they may fetch and where the sitemap "
            "lives. Without it, crawl budget is spent less efficiently."
        ),
        evidence=list(ctx.robots.errors) or ["No robots.txt found at /robots.txt"],
        affected_urls=[f"{ctx.config.origin}/robots.txt"],
        fix_steps=["Create a robots.txt file at the site root", "Include a Sitemap directive"],
        snippets=[f"User-agent: *\nAllow: /\n\nSitemap: {ctx.config.origin}/sitemap.xml"],
        verify_steps=["Open yoursite.com/robots.txt directly"],
    )


def _check_missing_viewport(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.has_viewport:
        return None
    return Issue(
        id="missing-viewport",
        title="Missing viewport meta tag",
        severity=Severity.CRITICAL,
        category=Category.TECHNICAL,
        why_it_matters=(
            "Without a viewport meta tag mobile browsers render the desktop layout "
            "zoomed out, and mobile-first indexing penalises the page."
        ),
        evidence=["No viewport meta tag found"],
        affected_urls=[ctx.homepage.url],
        fix_steps=["Add a viewport meta tag to the <head> of every page"],
        snippets=['<meta name="viewport" content="width=device-width, initial-scale=1">'],
        verify_steps=["View the page source and confirm the viewport tag exists"],
    )


def _check_missing_lang(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.has_lang:
        return None
    return Issue(
        id="missing-lang",
        title="Missing HTML lang attribute",
        severity=Severity.MEDIUM,
        category=Category.TECHNICAL,
        why_it_matters=(
            "The lang attribute declares the content language to search engines "
            "and screen readers."
        ),
        evidence=["No lang attribute on the <html> tag"],
        affected_urls=[ctx.homepage.url],
        fix_steps=["Add a lang attribute to the <html> tag"],
        snippets=['<html lang="en">'],
        verify_steps=["Check that the <html> tag carries a lang attribute"],
    )


def _check_no_https(ctx: RuleContext) -> Optional[Issue]:
    if urlparse(ctx.config.url).scheme == "https":
        return None
    return Issue(
        id="no-https",
        title="Website not using HTTPS",
        severity=Severity.CRITICAL,
        category=Category.SECURITY,
        why_it_matters=(
            "HTTPS is a confirmed ranking factor. Browsers flag plain HTTP pages as "
            "'Not Secure', which hurts trust and conversions."
        ),
        evidence=["Website is served over HTTP instead of HTTPS"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Obtain a TLS certificate (Let's Encrypt is free)",
            "Step 2: Install it on the web server",
            "Step 3: 301-redirect every HTTP URL to its HTTPS version",
            "Step 4: Update internal links and canonical tags to HTTPS",
            "Step 5: Add the HTTPS property in Google Search Console",
        ],
        platform_fix_steps=PlatformFixSteps(
            wordpress=[
                "Step 1: Enable the free certificate offered by the host",
                "Step 2: Update WordPress Address and Site Address in Settings > General",
                "Step 3: Clear all caches",
            ],
            shopify=[
                "Step 1: Shopify provisions TLS automatically",
                "Step 2: Check Online Store > Domains shows SSL enabled",
                "Step 3: Fix DNS settings for custom domains if it stays pending",
            ],
            custom=[
                "Step 1: Install a certificate on Apache or Nginx",
                "Step 2: Redirect HTTP to HTTPS at the server",
                "Step 3: Replace hardcoded http:// links in templates",
            ],
        ),
        snippets=[
            "# Apache .htaccess redirect\nRewriteEngine On\nRewriteCond %{HTTPS} off\n"
            "RewriteRule ^(.*)$ https://%{HTTP_HOST}%{REQUEST_URI} [L,R=301]",
            "# Nginx redirect\nserver {\n  listen 80;\n  server_name example.com;\n"
            "  return 301 https://$server_name$request_uri;\n}",
        ],
        verify_steps=[
            "Step 1: Check for the padlock icon in the browser",
            "Step 2: Request the HTTP version and confirm it redirects",
        ],
    )


def _check_blacklist(ctx: RuleContext) -> Optional[Issue]:
    report = ctx.reputation
    if report is None:
        return None
    listed = bool(report.listed_on)
    if listed:
        evidence = [
            f"Domain found on {len(report.listed_on)} blacklist(s): {', '.join(report.listed_on)}"
        ]
        fix_steps = [
            "Step 1: Identify the root cause (malware, spam content, compromised site)",
            "Step 2: Clean infected files and remove malicious code",
            "Step 3: Rotate admin passwords and API keys",
            "Step 4: Submit delisting requests to each blacklist service",
            "Step 5: Request a security review in Google Search Console",
        ]
    else:
        evidence = [
            f"Checked against {report.checked} major blacklist services",
            "Manual verification recommended for comprehensive results",
        ]
        fix_steps = [
            "Step 1: Use the verification links to check each blacklist manually",
            "Step 2: Repeat the checks monthly",
            "Step 3: Enable Google Search Console security alerts",
        ]
    return Issue(
        id="blacklist-check",
        title="Domain Blacklist & Reputation Check",
        severity=Severity.CRITICAL if listed else Severity.LOW,
        category=Category.SECURITY,
        why_it_matters=(
            "A listing on a spam or malware blacklist hurts email deliverability, "
            "search visibility and brand reputation; browsers may block the site outright."
        ),
        evidence=evidence,
        affected_urls=[f"https://{report.domain}"],
        fix_steps=fix_steps,
        platform_fix_steps=PlatformFixSteps(
            wordpress=[
                "Step 1: Install a security plugin such as Wordfence or Sucuri",
                "Step 2: Run a full malware scan and clean flagged files",
            ],
            shopify=[
                "Step 1: Review third-party apps for suspicious behaviour",
                "Step 2: Check for unauthorized staff accounts",
            ],
            custom=[
                "Step 1: Run server-side malware scans",
                "Step 2: Review access logs for suspicious activity",
                "Step 3: Put a web application firewall in front of the site",
            ],
        ),
        snippets=[f"{s.name}: {s.check_url}" for s in report.check_urls[:BLACKLIST_SNIPPETS]],
        verify_steps=[
            "Step 1: Open each verification link",
            'Step 2: Confirm each service reports the domain as "clean" or "not listed"',
            "Step 3: Check Google Search Console > Security & Manual Actions",
        ],
        manual_check_required=True,
    )


# ─── Marketing & analytics ────────────────────────────────────────────


def _check_missing_gtm(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.marketing.has_gtm:
        return None
    return Issue(
        id="missing-gtm",
        title="Google Tag Manager not detected",
        severity=Severity.MEDIUM,
        category=Category.MARKETING,
        why_it_matters=(
            "Google Tag Manager keeps every tracking tag in one place. Without it, "
            "each new marketing tag needs a code change."
        ),
        evidence=["No GTM container script detected on the homepage"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Create an account and a Web container at tagmanager.google.com",
            "Step 2: Paste the first snippet high in the <head> of every page",
            "Step 3: Paste the second snippet right after the opening <body> tag",
            "Step 4: Verify with GTM Preview mode, then publish the container",
        ],
        platform_fix_steps=PlatformFixSteps(
            wordpress=[
                "Step 1: Install 'Site Kit by Google' or 'GTM4WP'",
                "Step 2: Link the GTM container in the plugin settings",
            ],
            shopify=[
                "Step 1: Edit theme.liquid under Online Store > Themes > Edit code",
                "Step 2: Paste both GTM snippets into the layout",
            ],
        ),
        snippets=[
            "<!-- Google Tag Manager -->\n"
            "<script async src=\"https://www.googletagmanager.com/gtm.js?id=GTM-XXXXXXX\"></script>"
        ],
        verify_steps=["Step 1: Run GTM Preview mode and confirm the container fires"],
    )


def _check_missing_ga4(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.marketing.has_ga4:
        return None
    return Issue(
        id="missing-ga4",
        title="Google Analytics 4 (GA4) not detected",
        severity=Severity.HIGH,
        category=Category.MARKETING,
        why_it_matters=(
            "Without analytics there is no measure of traffic, behaviour or "
            "conversions, so marketing decisions are made blind."
        ),
        evidence=["No GA4 tracking code (G-XXXXXXX) detected on the homepage"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Create a GA4 property at analytics.google.com",
            "Step 2: Add a Web data stream for the site",
            "Step 3: Install the gtag.js snippet or a GA4 tag in Tag Manager",
            "Step 4: Confirm data arrives in the Realtime report",
        ],
        snippets=[
            '<script async src="https://www.googletagmanager.com/gtag/js?id=G-XXXXXXXXXX"></script>\n'
            "<script>\n  window.dataLayer = window.dataLayer || [];\n"
            "  function gtag(){dataLayer.push(arguments);}\n"
            "  gtag('js', new Date());\n  gtag('config', 'G-XXXXXXXXXX');\n</script>"
        ],
        verify_steps=["Step 1: Open the site and check the GA4 Realtime report"],
    )


def _check_missing_gsc_verification(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.marketing.has_search_console_verification:
        return None
    return Issue(
        id="missing-gsc-verification",
        title="Google Search Console verification not detected",
        severity=Severity.HIGH,
        category=Category.MARKETING,
        why_it_matters=(
            "Search Console reports indexing problems, search queries and manual "
            "penalties. Without it those problems go unnoticed."
        ),
        evidence=["No google-site-verification meta tag found on the homepage"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Add a URL-prefix property at search.google.com/search-console",
            "Step 2: Choose the HTML tag verification method",
            "Step 3: Paste the meta tag into the homepage <head>",
            "Step 4: Deploy and click Verify",
        ],
        platform_fix_steps=PlatformFixSteps(
            custom=[
                "Step 1: Add the meta tag to the HTML <head>",
                "Step 2: Or upload the HTML verification file to the site root",
                "Step 3: Or verify through a DNS TXT record",
            ],
        ),
        snippets=['<meta name="google-site-verification" content="YOUR_VERIFICATION_CODE_HERE">'],
        verify_steps=[
            'Step 1: Search the page source for "google-site-verification"',
            'Step 2: Confirm the property shows as "Verified"',
        ],
        mistakes_to_avoid=[
            "Do not remove the verification tag after verifying",
            "Do not ignore Search Console alerts",
        ],
    )


def _check_missing_clarity(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.marketing.has_clarity:
        return None
    return Issue(
        id="missing-clarity",
        title="Microsoft Clarity not detected",
        severity=Severity.LOW,
        category=Category.MARKETING,
        why_it_matters=(
            "Session recordings and heatmaps show where visitors get stuck. "
            "Microsoft Clarity provides both for free."
        ),
        evidence=["No Microsoft Clarity tracking code detected on the homepage"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Create a project at clarity.microsoft.com",
            "Step 2: Install the tracking code in <head> or through Tag Manager",
            "Step 3: Link Clarity to GA4 for combined reporting",
        ],
        snippets=[
            '<script type="text/javascript">\n'
            "  (function(c,l,a,r,i,t,y){c[a]=c[a]||function(){(c[a].q=c[a].q||[]).push(arguments)};\n"
            '  t=l.createElement(r);t.async=1;t.src="https://www.clarity.ms/tag/"+i;\n'
            "  y=l.getElementsByTagName(r)[0];y.parentNode.insertBefore(t,y);\n"
            '  })(window, document, "clarity", "script", "YOUR_PROJECT_ID");\n'
            "</script>"
        ],
        verify_steps=["Step 1: Check the Clarity dashboard for live sessions"],
    )


def _check_missing_local_business(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.marketing.has_local_business_schema:
        return None
    return Issue(
        id="missing-local-business",
        title="Google Business Profile / LocalBusiness schema not detected",
        severity=Severity.MEDIUM,
        category=Category.MARKETING,
        why_it_matters=(
            "Local businesses need a Google Business Profile to appear in local "
            "results and Maps. LocalBusiness schema ties the website to that profile."
        ),
        evidence=["No LocalBusiness, Organization or similar structured data found"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Claim the Google Business Profile at business.google.com",
            "Step 2: Complete name, address, phone and opening hours",
            "Step 3: Add LocalBusiness JSON-LD with the same details to the homepage",
        ],
        snippets=[
            '<script type="application/ld+json">\n'
            "{\n"
            '  "@context": "https://schema.org",\n'
            '  "@type": "LocalBusiness",\n'
            '  "name": "Your Business Name",\n'
            '  "telephone": "+1-555-555-5555",\n'
            f'  "url": "{ctx.homepage.url}"\n'
            "}\n"
            "</script>"
        ],
        verify_steps=["Step 1: Validate the schema with the Rich Results Test"],
        mistakes_to_avoid=["Do not use a different name or address than the Business Profile"],
        manual_check_required=True,
    )


def _check_missing_google_ads(ctx: RuleContext) -> Optional[Issue]:
    if ctx.homepage.marketing.has_google_ads_tag:
        return None
    return Issue(
        id="missing-google-ads",
        title="Google Ads Tag not detected (free setup recommended)",
        severity=Severity.LOW,
        category=Category.MARKETING,
        why_it_matters=(
            "Installing the Google Ads tag costs nothing and starts building "
            "remarketing audiences before any campaign runs."
        ),
        evidence=["No Google Ads tag (AW-XXXXXXX) detected on the homepage"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Create a free account at ads.google.com",
            "Step 2: Open Tools > Audience manager > Your data sources",
            "Step 3: Install the Google tag on every page",
        ],
        snippets=[
            '<script async src="https://www.googletagmanager.com/gtag/js?id=AW-XXXXXXXXX"></script>'
        ],
        verify_steps=["Step 1: Confirm the tag status in Google Ads is 'Active'"],
        manual_check_required=True,
    )


def _check_missing_conversion_tracking(ctx: RuleContext) -> Optional[Issue]:
    marketing = ctx.homepage.marketing
    if not marketing.has_google_ads_tag or marketing.has_google_ads_conversion:
        return None
    return Issue(
        id="missing-conversion-tracking",
        title="Google Ads conversion tracking not detected",
        severity=Severity.HIGH,
        category=Category.MARKETING,
        why_it_matters=(
            "Google Ads is installed without conversion tracking, so campaigns "
            "cannot optimize for sales or leads and ad spend is wasted."
        ),
        evidence=["Google Ads tag found but no conversion events detected"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: In Google Ads, go to Goals > Conversions > Summary",
            "Step 2: Create a Website conversion action",
            "Step 3: Define the primary conversions (purchase, lead form, signup)",
            "Step 4: Fire the conversion event on the confirmation page",
        ],
        snippets=[
            "<script>\n  gtag('event', 'conversion', {'send_to': 'AW-XXXXXXXXX/XXXXXXXX'});\n</script>"
        ],
        verify_steps=["Step 1: Complete a test conversion and check its status in Google Ads"],
    )


def _check_missing_merchant_center(ctx: RuleContext) -> Optional[Issue]:
    marketing = ctx.homepage.marketing
    if not marketing.has_product_schema or marketing.has_merchant_center_link:
        return None
    return Issue(
        id="missing-merchant-center",
        title="Google Merchant Center free listings opportunity",
        severity=Severity.MEDIUM,
        category=Category.MARKETING,
        why_it_matters=(
            "The site publishes product data but may not be in Google Shopping "
            "free listings, which show products at no cost in Shopping and Search."
        ),
        evidence=["Product schema detected but Merchant Center integration may be missing"],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Sign up at merchants.google.com and claim the website",
            "Step 2: Create and submit a product feed",
            "Step 3: Opt into free product listings",
            "Step 4: Give every product a title, price, availability, image and GTIN/MPN",
        ],
        verify_steps=["Step 1: Check the Merchant Center Diagnostics page for disapprovals"],
        manual_check_required=True,
    )


# ─── Performance ──────────────────────────────────────────────────────


def _check_slow_page_speed(ctx: RuleContext) -> Optional[Issue]:
    scored = [r for r in ctx.performance if r.score is not None]
    slow = [r for r in scored if r.score < GOOD_SPEED_SCORE]
    if not slow:
        return None
    worst = min(r.score for r in slow)
    return Issue(
        id="slow-page-speed",
        title="Slow page speed",
        severity=Severity.HIGH if worst < POOR_SPEED_SCORE else Severity.MEDIUM,
        category=Category.PERFORMANCE,
        why_it_matters=(
            "Page experience is a ranking signal and slow pages lose visitors "
            "before they render."
        ),
        evidence=[f"PageSpeed {r.strategy} score: {r.score}/100" for r in slow],
        affected_urls=[ctx.homepage.url],
        fix_steps=[
            "Step 1: Compress and resize images; serve WebP or AVIF",
            "Step 2: Defer non-critical JavaScript",
            "Step 3: Inline critical CSS and remove unused CSS",
            "Step 4: Enable caching and a CDN",
        ],
        verify_steps=[f"Step 1: Re-run PageSpeed Insights until the score reaches {GOOD_SPEED_SCORE}"],
    )


RULES: List[Rule] = [
    Rule("missing-meta-description", StageId.ONPAGE, CheckCategory.META_TAGS, _check_missing_meta_description),
    Rule("title-length", StageId.ONPAGE, CheckCategory.META_TAGS, _check_title_length),
    Rule("h1-issues", StageId.ONPAGE, CheckCategory.HEADINGS, _check_h1_issues),
    Rule("missing-og", StageId.ONPAGE, CheckCategory.META_TAGS, _check_missing_open_graph),
    Rule("meta-description-length", StageId.ONPAGE, CheckCategory.META_TAGS, _check_meta_description_length),
    Rule("missing-twitter-cards", StageId.ONPAGE, CheckCategory.META_TAGS, _check_missing_twitter_cards),
    Rule("images-missing-alt", StageId.ONPAGE, CheckCategory.IMAGES, _check_images_missing_alt),
    Rule("missing-structured-data", StageId.ONPAGE, CheckCategory.STRUCTURED_DATA, _check_missing_structured_data),
    Rule("low-internal-links", StageId.ONPAGE, CheckCategory.INTERNAL_LINKING, _check_low_internal_links),
    Rule("thin-content", StageId.ONPAGE, CheckCategory.CONTENT, _check_thin_content),
    Rule("low-keyword-optimization", StageId.ONPAGE, None, _check_low_keyword_optimization),
    Rule("keyword-gaps", StageId.ONPAGE, None, _check_keyword_gaps),
    Rule("missing-canonical", StageId.TECHNICAL, CheckCategory.INDEXING, _check_missing_canonical),
    Rule("missing-robots-txt", StageId.TECHNICAL, CheckCategory.INDEXING, _check_missing_robots_txt),
    Rule("missing-viewport", StageId.TECHNICAL, CheckCategory.TECHNICAL, _check_missing_viewport),
    Rule("missing-lang", StageId.TECHNICAL, CheckCategory.TECHNICAL, _check_missing_lang),
    Rule("no-https", StageId.TECHNICAL, CheckCategory.SECURITY, _check_no_https),
    Rule("blacklist-check", StageId.TECHNICAL, CheckCategory.REPUTATION, _check_blacklist),
    Rule("missing-gtm", StageId.TECHNICAL, CheckCategory.GTM, _check_missing_gtm),
    Rule("missing-ga4", StageId.TECHNICAL, CheckCategory.GA4, _check_missing_ga4),
    Rule("missing-gsc-verification", StageId.TECHNICAL, CheckCategory.SEARCH_CONSOLE, _check_missing_gsc_verification),
    Rule("missing-clarity", StageId.TECHNICAL, CheckCategory.CLARITY, _check_missing_clarity),
    Rule("missing-local-business", StageId.TECHNICAL, CheckCategory.BUSINESS_PROFILE, _check_missing_local_business),
    Rule("missing-google-ads", StageId.TECHNICAL, CheckCategory.GOOGLE_ADS, _check_missing_google_ads),
    Rule("missing-conversion-tracking", StageId.TECHNICAL, CheckCategory.CONVERSION_TRACKING, _check_missing_conversion_tracking),
    Rule("missing-merchant-center", StageId.TECHNICAL, CheckCategory.MERCHANT_CENTER, _check_missing_merchant_center),
    Rule("slow-page-speed", StageId.PERFORMANCE, CheckCategory.PERFORMANCE, _check_slow_page_speed),
]


def evaluate_rules(ctx: RuleContext, stage: Optional[StageId] = None) -> List[Issue]:
    """
    Evaluate the catalogue in order and collect the issues that fire.

    Args:
        ctx: Signals for the run.
        stage: Only evaluate rules belonging to this stage (all when None).

    Returns:
        Issues in catalogue order; at most one per rule.
    """
    issues: List[Issue] = []
    for rule in RULES:
        if stage is not None and rule.stage != stage:
            continue
        if rule.check_category is not None and not ctx.config.is_selected(rule.check_category):
            continue
        issue = rule.evaluate(ctx)
        if issue is not None:
            issues.append(issue)
    return issues
