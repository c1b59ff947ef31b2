"""
Semantic matching of a pull request against board issues.

Used when a PR names no issue that is on the board: each candidate is
scored against the PR text and the best one above the threshold wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from .github import BoardIssue
from .pacing import Deadline, NoPacing, Pacer
from .similarity import SimilarityError, SimilarityScorer

logger = logging.getLogger(__name__)


@dataclass
class SemanticMatch:
    """Best candidate for a PR, if any cleared the threshold."""
    issue: BoardIssue | None
    score: float = 0.0
    compared: int = 0
    skipped: int = 0

    def __iter__(self) -> Iterator:
        # Allows `issue, score = select_best_match(...)`
        yield self.issue
        yield self.score

    @property
    def found(self) -> bool:
        return self.issue is not None


def select_best_match(
    pr_title: str,
    pr_body: str,
    candidates: list[BoardIssue],
    threshold: float,
    scorer: SimilarityScorer,
    pacer: Pacer | None = None,
    deadline: Deadline | None = None,
) -> SemanticMatch:
    """
    Pick the candidate issue most similar to the PR.

    A candidate becomes the best match only when its score is strictly
    greater than the best so far and at least `threshold`, so ties go to
    the first candidate seen. Candidates whose comparison fails are
    logged and skipped.

    Args:
        pr_title: PR title
        pr_body: PR body/description
        candidates: Board issues to compare against (already status-filtered)
        threshold: Minimum score for a match
        scorer: Similarity scorer, called once per candidate
        pacer: Spaces successive scorer calls
        deadline: Checked before each scorer call

    Returns:
        SemanticMatch with the selected issue, or issue=None if no candidate qualified
    """
    pacer = pacer or NoPacing()
    deadline = deadline or Deadline()
    result = SemanticMatch(issue=None)

    for candidate in candidates:
        deadline.check(f"compare PR with issue #{candidate.number}")
        pacer.wait()
        try:
            score = scorer.score(pr_title, pr_body, candidate.title, candidate.body)
        except SimilarityError as e:
            logger.warning(f"Failed to compare PR with issue #{candidate.number}: {e}")
            result.skipped += 1
            continue

        result.compared += 1
        logger.debug(f"Issue #{candidate.number} similarity: {score:.2f}")

        if score > result.score and score >= threshold:
            result.issue = candidate
            result.score = score

    return result
