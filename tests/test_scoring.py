"""Tests for severity-weighted scoring and the run summary."""

from fixplan.audit.models import Category, Issue, Severity
from fixplan.audit.scoring import (
    MAX_CATEGORY_DEDUCTION,
    SEVERITY_DEDUCTIONS,
    build_summary,
    rank_issues,
    score_issues,
)


def _issue(severity, category=Category.ON_PAGE, id="x"):
    return Issue(id=id, title=id, severity=severity, category=category, why_it_matters="")


class TestScoreIssues:
    def test_no_issues(self):
        report = score_issues([])
        assert report.score == 100
        assert report.breakdown == []

    def test_weights(self):
        assert SEVERITY_DEDUCTIONS == {
            Severity.CRITICAL: 12,
            Severity.HIGH: 6,
            Severity.MEDIUM: 3,
            Severity.LOW: 1,
        }
        issues = [_issue(s) for s in Severity]
        assert score_issues(issues).score == 100 - 22

    def test_clamped_at_zero(self):
        issues = [_issue(Severity.CRITICAL, id=f"c{i}") for i in range(9)]
        assert score_issues(issues).score == 0

    def test_category_cap_is_display_only(self):
        """Three criticals in one category deduct 36 even though the display cap is 25."""
        issues = [_issue(Severity.CRITICAL, Category.TECHNICAL, id=f"c{i}") for i in range(3)]
        report = score_issues(issues)
        assert report.score == 64
        (entry,) = report.breakdown
        assert entry.deductions == 36
        assert entry.max_deduction == MAX_CATEGORY_DEDUCTION
        assert entry.issues == 3

    def test_breakdown_in_first_seen_order(self):
        issues = [
            _issue(Severity.LOW, Category.SECURITY),
            _issue(Severity.HIGH, Category.ON_PAGE),
            _issue(Severity.MEDIUM, Category.SECURITY),
        ]
        breakdown = score_issues(issues).breakdown
        assert [b.category for b in breakdown] == [Category.SECURITY, Category.ON_PAGE]
        assert [b.deductions for b in breakdown] == [4, 6]


class TestSummary:
    def test_partition(self):
        issues = [
            _issue(Severity.CRITICAL),
            _issue(Severity.HIGH),
            _issue(Severity.HIGH),
            _issue(Severity.LOW),
        ]
        summary = build_summary(issues, pages_analyzed=7)
        assert summary.pages_analyzed == 7
        assert summary.total_issues == 4
        assert (
            summary.critical_issues,
            summary.high_issues,
            summary.medium_issues,
            summary.low_issues,
        ) == (1, 2, 0, 1)
        assert (
            summary.critical_issues + summary.high_issues + summary.medium_issues + summary.low_issues
            == summary.total_issues
        )


class TestRankIssues:
    def test_most_severe_first_and_stable(self):
        issues = [
            _issue(Severity.LOW, id="low-1"),
            _issue(Severity.CRITICAL, id="crit"),
            _issue(Severity.LOW, id="low-2"),
            _issue(Severity.HIGH, id="high"),
        ]
        assert [i.id for i in rank_issues(issues)] == ["crit", "high", "low-1", "low-2"]
