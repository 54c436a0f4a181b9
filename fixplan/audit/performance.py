"""
Optional PageSpeed Insights lookup.

The engine renders nothing itself, so real Core Web Vitals only exist when
the caller opts into Google's PageSpeed Insights API.
"""

import json
import logging
from typing import Any, Dict, Optional

from ..fetcher import Fetcher, FetchError
from .models import PerformanceReport

logger = logging.getLogger(__name__)

PSI_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"

_METRICS = {
    "first_contentful_paint_ms": "first-contentful-paint",
    "largest_contentful_paint_ms": "largest-contentful-paint",
    "cumulative_layout_shift": "cumulative-layout-shift",
    "total_blocking_time_ms": "total-blocking-time",
    "speed_index_ms": "speed-index",
    "time_to_interactive_ms": "interactive",
}


def parse_pagespeed(strategy: str, data: Dict[str, Any]) -> PerformanceReport:
    lighthouse = data.get("lighthouseResult") or {}
    audits = lighthouse.get("audits") or {}
    raw_score = ((lighthouse.get("categories") or {}).get("performance") or {}).get("score")

    metrics: Dict[str, Optional[float]] = {}
    for name, key in _METRICS.items():
        value = (audits.get(key) or {}).get("numericValue")
        metrics[name] = float(value) if isinstance(value, (int, float)) else None

    score = int(round(raw_score * 100)) if isinstance(raw_score, (int, float)) else None
    return PerformanceReport(strategy=strategy, score=score, metrics=metrics)


async def fetch_pagespeed(
    fetcher: Fetcher, url: str, strategy: str, api_key: Optional[str] = None
) -> PerformanceReport:
    """Run PSI for one strategy ("mobile" or "desktop"). Failures are reported, not raised."""
    params = {"url": url, "strategy": strategy, "category": "performance"}
    if api_key:
        params["key"] = api_key
    try:
        response = await fetcher.fetch(PSI_ENDPOINT, require_ok=True, params=params)
        return parse_pagespeed(strategy, _json_object(response.text))
    except (FetchError, ValueError) as e:
        reason = e.reason if isinstance(e, FetchError) else f"invalid response: {e}"
        logger.warning(f"PageSpeed Insights ({strategy}) failed for {url}: {reason}")
        return PerformanceReport(strategy=strategy, error=reason)


def _json_object(text: str) -> Dict[str, Any]:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data
