"""
Command line entry point.

Usage:
    fixplan https://example.com
    fixplan https://example.com --keywords --competitor https://rival.com --output plan.json

Exit status: 0 complete, 1 error, 130 cancelled.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from .audit import (
    AnalysisConfig,
    CancelToken,
    CheckCategory,
    GeographicScope,
    OutcomeStatus,
    StageEvent,
    StageReporter,
    run_analysis,
)
from .config import Settings

logger = logging.getLogger("fixplan")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fixplan", description="Crawl a site and print a prioritized SEO fix plan as JSON."
    )
    parser.add_argument("url", help="Target site URL (http or https)")
    parser.add_argument(
        "--competitor", action="append", default=[], metavar="URL",
        help="Competitor URL for keyword gaps (repeatable, max 3)",
    )
    parser.add_argument("--crawl-limit", type=int, default=25, help="Page budget including the homepage")
    parser.add_argument("--include-subdomains", action="store_true", help="Crawl subdomains of the target host")
    parser.add_argument("--sitemap", metavar="URL", help="Sitemap URL to try before the discovered ones")
    parser.add_argument("--keywords", action="store_true", help="Run keyword and competitor gap analysis")
    parser.add_argument(
        "--scope", choices=[s.value for s in GeographicScope], default=GeographicScope.NATIONAL.value,
        help="Geographic scope for keyword suggestions",
    )
    parser.add_argument("--location", help="Target location for state/regional scope")
    parser.add_argument("--psi", action="store_true", help="Query PageSpeed Insights")
    parser.add_argument("--no-mobile", action="store_true", help="Skip the mobile PageSpeed run")
    parser.add_argument("--no-desktop", action="store_true", help="Skip the desktop PageSpeed run")
    parser.add_argument(
        "--skip-check", action="append", default=[], choices=[c.value for c in CheckCategory],
        metavar="CHECK", help="Disable a check category (repeatable)",
    )
    parser.add_argument("--output", metavar="FILE", help="Write the JSON result to FILE instead of stdout")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser


def config_from_args(args: argparse.Namespace) -> AnalysisConfig:
    skipped = set(args.skip_check)
    return AnalysisConfig(
        url=args.url,
        competitors=args.competitor,
        crawl_limit=args.crawl_limit,
        include_subdomains=args.include_subdomains,
        sitemap_override=args.sitemap,
        selected_categories=[c for c in CheckCategory if c.value not in skipped],
        enable_keyword_analysis=args.keywords,
        geographic_scope=GeographicScope(args.scope),
        target_location=args.location,
        check_mobile=not args.no_mobile,
        check_desktop=not args.no_desktop,
        use_psi=args.psi,
    )


def _log_stage(event: StageEvent) -> None:
    detail = event.error or event.message or ""
    logger.info(f"[{event.stage_id.value}] {event.status.value} {detail}".rstrip())


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(), format="%(asctime)s [%(levelname)s] %(message)s"
    )

    try:
        settings = Settings.from_env()
        config = config_from_args(args)
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_ERROR

    reporter = StageReporter()
    reporter.add_listener(_log_stage)
    cancel = CancelToken()

    try:
        outcome = asyncio.run(run_analysis(config, settings, reporter=reporter, cancel=cancel))
    except KeyboardInterrupt:
        cancel.cancel()
        logger.warning("Interrupted")
        return EXIT_CANCELLED

    if outcome.status == OutcomeStatus.CANCELLED:
        logger.warning(outcome.error)
        return EXIT_CANCELLED
    if outcome.status == OutcomeStatus.ERROR:
        logger.error(outcome.error)
        return EXIT_ERROR

    payload = outcome.result.model_dump_json(indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(payload)
        logger.info(f"Fix plan written to {args.output}")
    else:
        sys.stdout.write(payload + "\n")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
