"""Severity-weighted score and per-category breakdown."""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .models import AnalysisSummary, Category, Issue, ScoreBreakdownEntry, Severity

SEVERITY_DEDUCTIONS: Dict[Severity, int] = {
    Severity.CRITICAL: 12,
    Severity.HIGH: 6,
    Severity.MEDIUM: 3,
    Severity.LOW: 1,
}

# Display normalisation only; never caps the actual deduction.
MAX_CATEGORY_DEDUCTION = 25


@dataclass
class ScoreReport:
    score: int
    breakdown: List[ScoreBreakdownEntry] = field(default_factory=list)


def score_issues(issues: Sequence[Issue]) -> ScoreReport:
    """
    Score = max(0, 100 - sum of deductions).

    The breakdown lists categories in the order their first issue appears.
    """
    totals: Dict[Category, List[int]] = {}
    for issue in issues:
        entry = totals.setdefault(issue.category, [0, 0])
        entry[0] += SEVERITY_DEDUCTIONS[issue.severity]
        entry[1] += 1

    deducted = sum(d for d, _ in totals.values())
    breakdown = [
        ScoreBreakdownEntry(
            category=category,
            deductions=deductions,
            max_deduction=MAX_CATEGORY_DEDUCTION,
            issues=count,
        )
        for category, (deductions, count) in totals.items()
    ]
    return ScoreReport(score=max(0, 100 - deducted), breakdown=breakdown)


def rank_issues(issues: Sequence[Issue]) -> List[Issue]:
    """Most severe first; issues of equal severity keep catalogue order."""
    return sorted(issues, key=lambda issue: issue.severity.rank)


def build_summary(issues: Sequence[Issue], pages_analyzed: int) -> AnalysisSummary:
    def count(severity: Severity) -> int:
        return sum(1 for i in issues if i.severity == severity)

    return AnalysisSummary(
        pages_analyzed=pages_analyzed,
        total_issues=len(issues),
        critical_issues=count(Severity.CRITICAL),
        high_issues=count(Severity.HIGH),
        medium_issues=count(Severity.MEDIUM),
        low_issues=count(Severity.LOW),
    )
