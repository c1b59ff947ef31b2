"""
Organization-wide scan of open pull requests.

Runs PR-to-issue linking for every open PR in every repository of an
organization, so PRs opened before the agent was installed (or whose
webhook was missed) still land their issues in review. A failure on
one repository or PR is recorded and the scan moves on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from .github import GitHubAPIError, PullRequest, Repository
from .linking import BoardFetchError, BoardReader, link_pull_request_to_issues
from .pacing import Deadline, NoPacing, Pacer
from .similarity import SimilarityScorer
from .sinks import MutationSink

logger = logging.getLogger(__name__)


class PullRequestSource(BoardReader, Protocol):
    def get_org_repositories(self, org: str | None = None) -> list[Repository]:
        ...

    def get_open_pull_requests(self, owner: str, repo: str) -> list[PullRequest]:
        ...


@dataclass
class ScanReport:
    """Totals across every PR processed by a scan."""
    repositories_scanned: int = 0
    pull_requests_scanned: int = 0
    issues_linked: int = 0
    issues_moved: int = 0
    repositories_with_errors: int = 0
    dry_run: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "repositories_scanned": self.repositories_scanned,
            "pull_requests_scanned": self.pull_requests_scanned,
            "issues_linked": self.issues_linked,
            "issues_moved": self.issues_moved,
            "repositories_with_errors": self.repositories_with_errors,
            "dry_run": self.dry_run,
            "errors": list(self.errors),
        }


def scan_open_prs(
    org: str,
    client: PullRequestSource,
    sink: MutationSink,
    scorer: SimilarityScorer,
    *,
    threshold: float,
    active_statuses: list[str] | set[str],
    review_status: str = "PR Review",
    scoring_pacer: Pacer | None = None,
    mutation_pacer: Pacer | None = None,
    pr_pacer: Pacer | None = None,
    repo_pacer: Pacer | None = None,
    deadline: Deadline | None = None,
) -> ScanReport:
    """
    Link every open PR in `org` to its issues.

    Args:
        org: Organization whose repositories are scanned
        client: Lists repositories and PRs, and reads the board
        sink: Applies (or, in dry run, logs) board changes
        scorer: Similarity scorer for semantic matching
        threshold: Minimum similarity for a semantic match
        active_statuses: Statuses whose issues are semantic-match candidates
        review_status: Status matched issues are moved to
        scoring_pacer: Spaces similarity calls
        mutation_pacer: Spaces board mutations within one PR
        pr_pacer: Spaces successive PRs
        repo_pacer: Spaces successive repositories
        deadline: Checked before every external call

    Returns:
        ScanReport with totals and every error string

    Raises:
        GitHubAPIError: If the organization's repositories cannot be listed
        DeadlineExceeded: If the deadline passes before the scan finishes
    """
    pr_pacer = pr_pacer or NoPacing()
    repo_pacer = repo_pacer or NoPacing()
    deadline = deadline or Deadline()

    logger.info(f"Starting scan of open PRs across organization {org}")
    deadline.check("list repositories")
    repositories = client.get_org_repositories(org)
    logger.info(f"Found {len(repositories)} repositories")

    report = ScanReport(repositories_scanned=len(repositories), dry_run=sink.dry_run)

    for repo_index, repository in enumerate(repositories):
        if repo_index:
            repo_pacer.wait()
        logger.info(f"Scanning repository: {repository.full_name}")

        deadline.check(f"list open PRs in {repository.full_name}")
        try:
            pull_requests = client.get_open_pull_requests(repository.owner, repository.name)
        except GitHubAPIError as e:
            message = f"Failed to fetch PRs for {repository.full_name}: {e}"
            logger.error(message)
            report.errors.append(message)
            report.repositories_with_errors += 1
            continue

        if not pull_requests:
            logger.info("No open PRs found")
            continue

        logger.info(f"Found {len(pull_requests)} open PR(s)")
        report.pull_requests_scanned += len(pull_requests)

        for pr_index, pr in enumerate(pull_requests):
            if pr_index:
                pr_pacer.wait()
            logger.info(f"Processing PR #{pr.number}: {pr.title}")

            try:
                run = link_pull_request_to_issues(
                    repository.owner,
                    repository.name,
                    pr.number,
                    pr.title,
                    pr.body,
                    client,
                    sink,
                    scorer,
                    threshold=threshold,
                    active_statuses=active_statuses,
                    review_status=review_status,
                    scoring_pacer=scoring_pacer,
                    mutation_pacer=mutation_pacer,
                    deadline=deadline,
                )
            except BoardFetchError as e:
                message = f"Failed to process PR {repository.full_name}#{pr.number}: {e}"
                logger.error(message)
                report.errors.append(message)
                continue

            linked = run.issues_linked_direct + run.issues_linked_semantic
            report.issues_linked += linked
            report.issues_moved += run.issues_moved_to_review
            report.errors.extend(run.errors)

            if linked:
                logger.info(f"  Linked to {linked} issue(s), moved {run.issues_moved_to_review} to {review_status}")
            else:
                logger.info("  No issues linked")

    return report
