"""
Container HTTP server for fix-plan analysis runs.

A UI (or its gateway worker) drives one analysis per container through a
small JSON API. Runs on port 8000 unless FIXPLAN_PORT is set.

Endpoints:
    POST /start   - Begin an analysis (AnalysisConfig JSON; returns immediately)
    GET  /status  - Poll stage progress and retrieve the result when done
    POST /cancel  - Ask the running analysis to stop
    GET  /health  - Liveness check
"""

import asyncio
import json
import logging
import os
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional

from pydantic import ValidationError

from fixplan.audit import (
    AnalysisConfig,
    AnalysisOutcome,
    CancelToken,
    StageEvent,
    StageReporter,
    run_analysis,
)
from fixplan.config import Settings

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger("fixplan-container")

# ─── Shared State ─────────────────────────────────────────────────────
# One analysis at a time per container

state = {
    "status": "idle",       # idle | running | complete | cancelled | error
    "job_id": None,
    "stages": [],
    "error": None,
    "result": None,         # set when complete
}
state_lock = threading.Lock()
cancel_token: Optional[CancelToken] = None


# ─── Analysis Runner (async, runs in background thread) ──────────────

def _record_stage(event: StageEvent):
    with state_lock:
        stages = [s for s in state["stages"] if s["stage_id"] != event.stage_id.value]
        stages.append(event.model_dump(mode="json"))
        state["stages"] = stages


def run_analysis_in_thread(job_id: str, config: AnalysisConfig, cancel: CancelToken):
    """Runs the async analysis in a new event loop on a background thread."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        outcome = loop.run_until_complete(_analyze(job_id, config, cancel))
        _finish(outcome)
    except Exception as e:
        logger.error(f"Analysis thread failed: {e}", exc_info=True)
        with state_lock:
            state["status"] = "error"
            state["error"] = str(e)
    finally:
        loop.close()


async def _analyze(job_id: str, config: AnalysisConfig, cancel: CancelToken) -> AnalysisOutcome:
    logger.info(f"Starting analysis: job={job_id} url={config.url} crawl_limit={config.crawl_limit}")
    reporter = StageReporter()
    reporter.add_listener(_record_stage)
    return await run_analysis(config, Settings.from_env(), reporter=reporter, cancel=cancel)


def _finish(outcome: AnalysisOutcome):
    payload = outcome.to_payload()
    with state_lock:
        state["status"] = outcome.status.value
        state["error"] = outcome.error
        state["stages"] = payload["stages"]
        state["result"] = payload["result"]

    if outcome.result is not None:
        logger.info(
            f"Results ready: score {outcome.result.score}/100, "
            f"{outcome.result.summary.total_issues} issues"
        )
    else:
        logger.info(f"Analysis ended: {outcome.status.value} ({outcome.error})")


# ─── HTTP Request Handler ─────────────────────────────────────────────

class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/health":
            self._respond(200, {"status": "ok"})

        elif self.path == "/status":
            with state_lock:
                resp = {
                    "status": state["status"],
                    "job_id": state["job_id"],
                    "stages": state["stages"],
                    "error": state["error"],
                }
                # Include the full result when complete (the UI ingests it)
                if state["status"] == "complete":
                    resp["result"] = state["result"]
            self._respond(200, resp)

        else:
            self._respond(404, {"error": "not found"})

    def do_POST(self):
        global cancel_token

        if self.path == "/start":
            try:
                content_length = int(self.headers.get("Content-Length", 0))
                body = json.loads(self.rfile.read(content_length)) if content_length else {}
                if not isinstance(body, dict):
                    raise ValueError("request body must be a JSON object")
                job_id = body.pop("job_id", None)
                config = AnalysisConfig.model_validate(body)
            except (ValueError, ValidationError) as e:
                self._respond(400, {"error": str(e)})
                return

            with state_lock:
                if state["status"] == "running":
                    self._respond(409, {"error": "analysis already running"})
                    return

                state["status"] = "running"
                state["job_id"] = job_id
                state["stages"] = []
                state["error"] = None
                state["result"] = None
                cancel_token = CancelToken()
                token = cancel_token

            # Start analysis in background thread
            t = threading.Thread(
                target=run_analysis_in_thread,
                args=(job_id or "", config, token),
                daemon=True,
            )
            t.start()

            self._respond(202, {"status": "started", "job_id": job_id})

        elif self.path == "/cancel":
            with state_lock:
                running = state["status"] == "running"
                token = cancel_token
            if not running or token is None:
                self._respond(409, {"error": "no analysis running"})
                return
            token.cancel()
            self._respond(202, {"status": "cancelling"})

        else:
            self._respond(404, {"error": "not found"})

    def _respond(self, code: int, data: dict):
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(data).encode())

    def log_message(self, format, *args):
        # Suppress default access logs, use our logger instead
        logger.debug(f"{self.address_string()} {format % args}")


# ─── Main ─────────────────────────────────────────────────────────────

if __name__ == "__main__":
    port = int(os.environ.get("FIXPLAN_PORT", "8000"))
    server = HTTPServer(("0.0.0.0", port), Handler)
    logger.info(f"fixplan container listening on port {port}")
    server.serve_forever()
