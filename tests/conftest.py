"""
Shared fixtures: a local threaded HTTP site and an HTML page builder.

The site serves whatever routes a test registers, so fetcher, robots and
orchestrator tests run against real sockets instead of mocks.
"""

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List, NamedTuple, Optional

import pytest


# ---------------------------------------------------------------------------
# Local test site
# ---------------------------------------------------------------------------


class Route(NamedTuple):
    body: str = ""
    status: int = 200
    content_type: str = "text/html; charset=utf-8"
    delay: float = 0.0
    location: Optional[str] = None


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, *a):
        pass

    def do_GET(self):
        self.server.hits.append(self.path)
        self.server.agents.append(self.headers.get("User-Agent"))
        route = self.server.routes.get(self.path)
        if route is None:
            route = self.server.routes.get(self.path.split("?", 1)[0])
        if route is None:
            route = Route(body="<html><body>not found</body></html>", status=404)
        if route.delay:
            time.sleep(route.delay)

        body = route.body.encode("utf-8")
        self.send_response(route.status)
        self.send_header("Content-Type", route.content_type)
        self.send_header("Content-Length", str(len(body)))
        if route.location:
            self.send_header("Location", route.location)
        self.end_headers()
        self.wfile.write(body)


class _Server(ThreadingHTTPServer):
    allow_reuse_address = True
    daemon_threads = True


class Site:
    def __init__(self, server: _Server):
        self._server = server
        self.url = f"http://127.0.0.1:{server.server_address[1]}"

    @property
    def routes(self) -> Dict[str, Route]:
        return self._server.routes

    @property
    def hits(self) -> List[str]:
        return self._server.hits

    @property
    def agents(self) -> List[str]:
        return self._server.agents

    def add(self, path: str, body: str = "", **kwargs) -> None:
        self._server.routes[path] = Route(body=body, **kwargs)


@pytest.fixture
def site():
    s = _Server(("127.0.0.1", 0), _Handler)
    s.routes = {}
    s.hits = []
    s.agents = []
    t = threading.Thread(target=s.serve_forever, daemon=True)
    t.start()
    yield Site(s)
    s.shutdown()
    s.server_close()


# ---------------------------------------------------------------------------
# HTML builder
# ---------------------------------------------------------------------------

GOOD_TITLE = "Acme Plumbing | Emergency Plumbers in Springfield"  # 49 chars
GOOD_DESCRIPTION = (
    "Acme Plumbing fixes leaks, drains and water heaters across Springfield. "
    "Licensed plumbers, upfront prices, same-day service."
)  # 124 chars

MARKETING_SNIPPETS = """
<script async src="https://www.googletagmanager.com/gtm.js?id=GTM-ABC1234"></script>
<script async src="https://www.googletagmanager.com/gtag/js?id=G-ABCDEF1234"></script>
<script>gtag('config', 'AW-123456789'); gtag('event', 'conversion', {'send_to': 'AW-123456789/x'});</script>
<script src="https://www.clarity.ms/tag/abc123xyz"></script>
"""

LOCAL_BUSINESS_JSON_LD = (
    '<script type="application/ld+json">'
    '{"@context": "https://schema.org", "@type": "Plumber", "name": "Acme"}'
    "</script>"
    '<script type="application/ld+json">'
    '{"@context": "https://schema.org", "@type": "LocalBusiness", "name": "Acme"}'
    "</script>"
)


def build_page(
    title: Optional[str] = GOOD_TITLE,
    description: Optional[str] = GOOD_DESCRIPTION,
    h1_count: int = 1,
    canonical: Optional[str] = "https://example.com/",
    viewport: bool = True,
    lang: bool = True,
    open_graph: bool = True,
    twitter: bool = True,
    json_ld: str = LOCAL_BUSINESS_JSON_LD,
    links: Optional[List[str]] = None,
    words: int = 320,
    marketing: bool = True,
    gsc: bool = True,
    body_extra: str = "",
) -> str:
    """A homepage that passes every rule unless a keyword says otherwise."""
    if links is None:
        links = ["/about", "/services", "/pricing", "/blog", "/contact", "/faq"]

    head = []
    if title is not None:
        head.append(f"<title>{title}</title>")
    if description is not None:
        head.append(f'<meta name="description" content="{description}">')
    if canonical:
        head.append(f'<link rel="canonical" href="{canonical}">')
    if viewport:
        head.append('<meta name="viewport" content="width=device-width, initial-scale=1">')
    if open_graph:
        head.append('<meta property="og:title" content="Acme Plumbing">')
    if twitter:
        head.append('<meta name="twitter:card" content="summary_large_image">')
    if gsc:
        head.append('<meta name="google-site-verification" content="token123">')
    if marketing:
        head.append(MARKETING_SNIPPETS)
    head.append(json_ld)

    body = [f"<h1>Heading {i + 1}</h1>" for i in range(h1_count)]
    body.extend(f'<a href="{href}">link</a>' for href in links)
    filler_needed = max(0, words - h1_count * 2 - len(links))
    body.append("<p>" + " ".join(["word"] * filler_needed) + "</p>")
    body.append(body_extra)

    html_open = '<html lang="en">' if lang else "<html>"
    return (
        f"<!DOCTYPE html>{html_open}<head>{''.join(head)}</head>"
        f"<body>{''.join(body)}</body></html>"
    )


@pytest.fixture
def page_builder():
    return build_page
