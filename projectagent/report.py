"""
Run reports for PR-to-issue linking.

ReportBuilder accumulates counters and error strings while a run is in
progress; build() returns the frozen RunReport handed to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .github import BoardIssue


MOVED = "moved"
SKIPPED = "skipped"  # dry run, nothing applied
ERRORED = "errored"


@dataclass(frozen=True)
class LinkedIssue:
    """Decision and disposition for one issue the PR was linked to."""
    issue: BoardIssue
    via: str  # "direct" or "semantic"
    disposition: str
    score: float | None = None
    cross_referenced: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue": str(self.issue),
            "number": self.issue.number,
            "title": self.issue.title,
            "via": self.via,
            "disposition": self.disposition,
            "score": self.score,
            "cross_referenced": self.cross_referenced,
            "error": self.error,
        }


@dataclass(frozen=True)
class LinkingOutcome:
    """Issues resolved from direct references, and the semantic match if any."""
    direct: tuple[LinkedIssue, ...] = ()
    semantic: LinkedIssue | None = None


@dataclass(frozen=True)
class RunReport:
    """Results of linking one pull request."""
    pr: str
    direct_references_found: int = 0
    issues_linked_direct: int = 0
    semantic_match_found: bool = False
    issues_linked_semantic: int = 0
    issues_moved_to_review: int = 0
    skipped_comparisons: int = 0
    dry_run: bool = False
    errors: tuple[str, ...] = ()
    outcome: LinkingOutcome = field(default_factory=LinkingOutcome)

    @property
    def has_errors(self) -> bool:
        """Completed with warnings."""
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "pr": self.pr,
            "direct_references_found": self.direct_references_found,
            "issues_linked_direct": self.issues_linked_direct,
            "semantic_match_found": self.semantic_match_found,
            "issues_linked_semantic": self.issues_linked_semantic,
            "issues_moved_to_review": self.issues_moved_to_review,
            "skipped_comparisons": self.skipped_comparisons,
            "dry_run": self.dry_run,
            "errors": list(self.errors),
            "direct": [linked.to_dict() for linked in self.outcome.direct],
            "semantic": self.outcome.semantic.to_dict() if self.outcome.semantic else None,
        }


class ReportBuilder:
    """Accumulate-only counterpart of RunReport used during a run."""

    def __init__(self, pr: str, dry_run: bool = False):
        self.pr = pr
        self.dry_run = dry_run
        self.direct_references_found = 0
        self.issues_linked_direct = 0
        self.semantic_match_found = False
        self.issues_linked_semantic = 0
        self.issues_moved_to_review = 0
        self.skipped_comparisons = 0
        self.errors: list[str] = []
        self.direct: list[LinkedIssue] = []
        self.semantic: LinkedIssue | None = None

    def references_found(self, count: int) -> None:
        self.direct_references_found += count

    def linked_direct(self) -> None:
        self.issues_linked_direct += 1

    def linked_semantic(self) -> None:
        self.semantic_match_found = True
        self.issues_linked_semantic += 1

    def moved_to_review(self) -> None:
        self.issues_moved_to_review += 1

    def comparisons_skipped(self, count: int) -> None:
        self.skipped_comparisons += count

    def error(self, message: str) -> None:
        self.errors.append(message)

    def build(self) -> RunReport:
        return RunReport(
            pr=self.pr,
            direct_references_found=self.direct_references_found,
            issues_linked_direct=self.issues_linked_direct,
            semantic_match_found=self.semantic_match_found,
            issues_linked_semantic=self.issues_linked_semantic,
            issues_moved_to_review=self.issues_moved_to_review,
            skipped_comparisons=self.skipped_comparisons,
            dry_run=self.dry_run,
            errors=tuple(self.errors),
            outcome=LinkingOutcome(direct=tuple(self.direct), semantic=self.semantic),
        )
