"""Run-level failures raised by the orchestrator."""

from typing import Optional

from .models import StageId


class AuditError(Exception):
    """A fatal, run-aborting failure attributed to one stage."""

    def __init__(self, message: str, stage: Optional[StageId] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class InvalidTargetError(AuditError):
    def __init__(self, message: str = "Invalid URL format"):
        super().__init__(message, StageId.VALIDATE)


class HomepageFetchError(AuditError):
    def __init__(self, reason: str):
        super().__init__(f"Failed to fetch URL: {reason}", StageId.HOMEPAGE)


class AnalysisTimeout(AuditError):
    def __init__(self, seconds: float, stage: Optional[StageId] = None):
        super().__init__(f"Analysis timed out after {seconds:g}s", stage)


class AnalysisCancelled(Exception):
    """User-requested stop. Not an AuditError: callers must tell the two apart."""

    def __init__(self, stage: Optional[StageId] = None):
        super().__init__("Analysis cancelled")
        self.stage = stage
