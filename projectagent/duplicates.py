"""
Duplicate issue detection.

Compares board issues pairwise with the similarity scorer, groups
issues that score above the duplicate threshold, and labels every
member of a group so a human can review them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .github import BoardIssue, GitHubAPIError
from .pacing import Deadline, NoPacing, Pacer
from .similarity import SimilarityError, SimilarityScorer
from .sinks import MutationSink

logger = logging.getLogger(__name__)


@dataclass
class DuplicateGroup:
    """Issues that look like the same work item."""
    issues: list[BoardIssue]
    similarity: float  # lowest score that joined a member to the group

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [str(issue) for issue in self.issues],
            "similarity": round(self.similarity, 3),
        }


@dataclass
class DuplicateReport:
    """Results of a duplicate detection run."""
    issues_analyzed: int = 0
    groups: list[DuplicateGroup] = field(default_factory=list)
    issues_labeled: int = 0
    skipped_comparisons: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues_analyzed": self.issues_analyzed,
            "groups": [group.to_dict() for group in self.groups],
            "issues_labeled": self.issues_labeled,
            "skipped_comparisons": self.skipped_comparisons,
            "errors": list(self.errors),
        }


def find_duplicate_groups(
    issues: list[BoardIssue],
    scorer: SimilarityScorer,
    threshold: float,
    pacer: Pacer | None = None,
    deadline: Deadline | None = None,
) -> tuple[list[DuplicateGroup], int]:
    """
    Group issues whose similarity is at least `threshold`.

    Each issue seeds a group with the later issues that match it. An issue
    already placed in a group is not compared again, so every pair is
    scored at most once.

    Returns:
        (groups, skipped) where skipped counts comparisons that failed
    """
    pacer = pacer or NoPacing()
    deadline = deadline or Deadline()

    groups: list[DuplicateGroup] = []
    processed: set[str] = set()
    skipped = 0

    for i, first in enumerate(issues):
        if first.key in processed:
            continue

        members: list[BoardIssue] = []
        lowest = 1.0

        for second in issues[i + 1:]:
            if second.key in processed:
                continue

            deadline.check(f"compare issues #{first.number} and #{second.number}")
            pacer.wait()
            try:
                score = scorer.score(first.title, first.body, second.title, second.body)
            except SimilarityError as e:
                logger.warning(
                    f"Failed to compare issues #{first.number} and #{second.number}: {e}"
                )
                skipped += 1
                continue

            if score >= threshold:
                if not members:
                    members.append(first)
                    processed.add(first.key)
                members.append(second)
                processed.add(second.key)
                lowest = min(lowest, score)

        if len(members) > 1:
            groups.append(DuplicateGroup(issues=members, similarity=lowest))

    return groups, skipped


def detect_duplicates(
    issues: list[BoardIssue],
    scorer: SimilarityScorer,
    sink: MutationSink,
    *,
    threshold: float,
    label: str = "possible duplicate",
    pacer: Pacer | None = None,
    mutation_pacer: Pacer | None = None,
    deadline: Deadline | None = None,
) -> DuplicateReport:
    """Find duplicate groups among `issues` and label their members."""
    pacer = pacer or NoPacing()
    mutation_pacer = mutation_pacer or NoPacing()
    deadline = deadline or Deadline()
    report = DuplicateReport(issues_analyzed=len(issues))

    logger.info("Detecting potential duplicate issues...")
    if len(issues) < 2:
        return report

    report.groups, report.skipped_comparisons = find_duplicate_groups(
        issues, scorer, threshold, pacer=pacer, deadline=deadline
    )
    logger.info(f"Found {len(report.groups)} potential duplicate groups")

    labels_sent = 0
    for group in report.groups:
        for issue in group.issues:
            if labels_sent:
                mutation_pacer.wait()
            labels_sent += 1
            deadline.check(f"label issue #{issue.number}")
            try:
                labeled = sink.add_label(issue, label)
            except GitHubAPIError as e:
                message = f"Failed to label issue #{issue.number}: {e}"
                logger.warning(message)
                report.errors.append(message)
                continue

            if labeled:
                report.issues_labeled += 1
                logger.info(f"Added {label!r} label to issue #{issue.number}")

    return report
