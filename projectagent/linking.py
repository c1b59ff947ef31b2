"""
PR-to-issue linking for project-agent.

Given a pull request, find the board issues it works on and move them
to the review status:

1. Extract issue references from the PR title and body
2. Resolve each reference to an issue on the project board
3. If none resolved, fall back to semantic matching against active issues
4. Move matched issues to review; semantic matches also get a
   cross-reference comment, since GitHub only auto-links issues the PR
   text names

Per-issue failures are recorded in the report and never stop the run.
Only a failed candidate fetch for semantic matching is fatal.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .github import BoardIssue, GitHubAPIError
from .matching import select_best_match
from .pacing import Deadline, NoPacing, Pacer
from .references import IssueReference, extract_references
from .report import ERRORED, MOVED, SKIPPED, LinkedIssue, ReportBuilder, RunReport
from .similarity import SimilarityScorer
from .sinks import MutationSink

logger = logging.getLogger(__name__)


class BoardFetchError(RuntimeError):
    """Candidate issues for semantic matching could not be fetched."""


class BoardReader(Protocol):
    def get_issue_if_on_board(self, owner: str, repo: str, number: int) -> BoardIssue | None:
        ...

    def get_issues_by_statuses(self, statuses: list[str] | set[str]) -> list[BoardIssue]:
        ...


def resolution_order(refs: list[IssueReference]) -> list[IssueReference]:
    """Deterministic order for resolving references: by repository, then number."""
    return sorted(refs, key=lambda ref: (ref.owner.lower(), ref.repo.lower(), ref.number))


def resolve_references(
    refs: list[IssueReference],
    board: BoardReader,
    deadline: Deadline,
) -> list[BoardIssue]:
    """Fetch each referenced issue, keeping only those on the board."""
    resolved: list[BoardIssue] = []

    for ref in resolution_order(refs):
        deadline.check(f"resolve {ref}")
        try:
            issue = board.get_issue_if_on_board(ref.owner, ref.repo, ref.number)
        except GitHubAPIError as e:
            logger.warning(f"Issue {ref} not accessible: {e}")
            continue

        if issue is None or not issue.is_on_board:
            logger.warning(f"Issue {ref} is not in the project")
            continue

        resolved.append(issue)

    return resolved


def _move_to_review(
    issue: BoardIssue,
    review_status: str,
    sink: MutationSink,
    report: ReportBuilder,
) -> tuple[str, str | None]:
    """Move one issue to review, returning (disposition, error)."""
    try:
        applied = sink.set_status(issue, review_status)
    except GitHubAPIError as e:
        message = f"Failed to move issue #{issue.number} to {review_status}: {e}"
        logger.error(message)
        report.error(message)
        return ERRORED, message

    if not applied:
        return SKIPPED, None

    logger.info(f"Moved issue #{issue.number} to {review_status} status")
    report.moved_to_review()
    return MOVED, None


def link_pull_request_to_issues(
    pr_owner: str,
    pr_repo: str,
    pr_number: int,
    pr_title: str,
    pr_body: str,
    board: BoardReader,
    sink: MutationSink,
    scorer: SimilarityScorer,
    *,
    threshold: float,
    active_statuses: list[str] | set[str],
    review_status: str = "PR Review",
    scoring_pacer: Pacer | None = None,
    mutation_pacer: Pacer | None = None,
    deadline: Deadline | None = None,
) -> RunReport:
    """
    Link a pull request to the board issues it relates to.

    Direct references always take precedence: semantic matching runs only
    when no referenced issue is on the board, and selects at most one issue.

    Args:
        pr_owner: Owner of the PR's repository (default for bare references)
        pr_repo: Name of the PR's repository (default for bare references)
        pr_number: PR number
        pr_title: PR title
        pr_body: PR body/description
        board: Reads issues from the project board
        sink: Applies (or, in dry run, logs) board changes
        scorer: Similarity scorer for semantic matching
        threshold: Minimum similarity for a semantic match
        active_statuses: Statuses whose issues are semantic-match candidates
        review_status: Status matched issues are moved to
        scoring_pacer: Spaces similarity calls
        mutation_pacer: Spaces board mutations
        deadline: Checked before every external call

    Returns:
        RunReport with counters, per-issue outcome and error strings

    Raises:
        BoardFetchError: If candidate issues for semantic matching cannot be fetched
        DeadlineExceeded: If the deadline passes before the run finishes
    """
    deadline = deadline or Deadline()
    mutation_pacer = mutation_pacer or NoPacing()
    pr_title = pr_title or ""
    pr_body = pr_body or ""

    report = ReportBuilder(f"{pr_owner}/{pr_repo}#{pr_number}", dry_run=sink.dry_run)
    logger.info(f"Processing PR {report.pr}")

    # Extract
    refs = extract_references(pr_title, pr_body, pr_owner, pr_repo)
    report.references_found(len(refs))
    if refs:
        logger.info(f"Found {len(refs)} direct issue reference(s)")
        for ref in refs:
            logger.info(f"  - {ref} (explicit: {ref.is_explicit})")

    # Resolve
    matched = resolve_references(refs, board, deadline)
    for _ in matched:
        report.linked_direct()
    logger.info(f"Found {len(matched)} referenced issue(s) in the project")

    if matched:
        for index, issue in enumerate(matched):
            if index:
                mutation_pacer.wait()
            deadline.check(f"move issue #{issue.number}")
            disposition, error = _move_to_review(issue, review_status, sink, report)
            report.direct.append(LinkedIssue(
                issue=issue,
                via="direct",
                disposition=disposition,
                error=error,
            ))
        return report.build()

    # Infer
    logger.info("No direct references found, attempting semantic matching...")
    deadline.check("fetch candidate issues")
    try:
        candidates = board.get_issues_by_statuses(active_statuses)
    except GitHubAPIError as e:
        raise BoardFetchError(f"Failed to fetch issues for semantic matching: {e}") from e

    candidates = [issue for issue in candidates if issue.is_on_board]
    logger.info(f"Checking semantic similarity against {len(candidates)} issues")

    match = select_best_match(
        pr_title,
        pr_body,
        candidates,
        threshold,
        scorer,
        pacer=scoring_pacer,
        deadline=deadline,
    )
    report.comparisons_skipped(match.skipped)

    if match.issue is None:
        logger.info("No semantic matches found above threshold")
        return report.build()

    issue = match.issue
    logger.info(f"Found semantic match: issue #{issue.number} (similarity: {match.score:.2f})")
    report.linked_semantic()

    deadline.check(f"move issue #{issue.number}")
    disposition, error = _move_to_review(issue, review_status, sink, report)

    # The cross-reference is attempted even if the move failed; a failure
    # here does not undo a successful move.
    cross_referenced = False
    deadline.check(f"link PR to issue #{issue.number}")
    try:
        cross_referenced = sink.link_pull_request(issue, pr_owner, pr_repo, pr_number)
    except GitHubAPIError as e:
        message = f"Failed to link PR to issue #{issue.number}: {e}"
        logger.error(message)
        report.error(message)
        error = error or message
    else:
        if cross_referenced:
            logger.info(f"Created cross-reference link to issue #{issue.number}")

    report.semantic = LinkedIssue(
        issue=issue,
        via="semantic",
        disposition=disposition,
        score=match.score,
        cross_referenced=cross_referenced,
        error=error,
    )
    return report.build()
