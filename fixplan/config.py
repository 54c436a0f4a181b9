"""
Runtime settings.

Read from environment variables once per process, the same way the
container entrypoints read MAX_PAGES / MAX_DEPTH:

    FIXPLAN_USER_AGENT            - User-Agent sent on every request
    FIXPLAN_REQUEST_TIMEOUT       - Per-request timeout in seconds (default: 10)
    FIXPLAN_MAX_REDIRECTS         - Redirect hops followed per request (default: 5)
    FIXPLAN_PAGE_CAP              - Hard cap on crawled internal pages (default: 10)
    FIXPLAN_CRAWL_CONCURRENCY     - Parallel page fetches (default: 4)
    FIXPLAN_COMPETITOR_CONCURRENCY- Parallel competitor fetches (default: 4)
    FIXPLAN_RUN_TIMEOUT           - Deadline for a whole run in seconds (default: 120)
    FIXPLAN_REFERENCE_COMPETITOR  - Competitor always included in keyword analysis
    PAGESPEED_API_KEY             - Optional PageSpeed Insights key
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_USER_AGENT = "fixplan-SEO-Analyzer/1.0 (+https://github.com/fixplan/fixplan)"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = Field(default=10.0, gt=0)
    max_redirects: int = Field(default=5, ge=0)
    page_cap: int = Field(default=10, ge=0)
    crawl_concurrency: int = Field(default=4, ge=1)
    competitor_concurrency: int = Field(default=4, ge=1)
    run_timeout: float = Field(default=120.0, gt=0)
    reference_competitor: str = "https://neilpatel.com/"
    pagespeed_api_key: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        values = {}
        for field, var in _ENV_VARS.items():
            raw = env.get(var)
            if raw is not None and raw.strip() != "":
                values[field] = raw.strip()
        return cls(**values)


_ENV_VARS = {
    "user_agent": "FIXPLAN_USER_AGENT",
    "request_timeout": "FIXPLAN_REQUEST_TIMEOUT",
    "max_redirects": "FIXPLAN_MAX_REDIRECTS",
    "page_cap": "FIXPLAN_PAGE_CAP",
    "crawl_concurrency": "FIXPLAN_CRAWL_CONCURRENCY",
    "competitor_concurrency": "FIXPLAN_COMPETITOR_CONCURRENCY",
    "run_timeout": "FIXPLAN_RUN_TIMEOUT",
    "reference_competitor": "FIXPLAN_REFERENCE_COMPETITOR",
    "pagespeed_api_key": "PAGESPEED_API_KEY",
}
