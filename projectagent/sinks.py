"""
Mutation sinks: where board changes go.

Tasks decide what to change and hand every change to a sink. The board
sink applies it through the GitHub client; the dry-run sink only logs
what would have happened. Each method returns True when the board was
actually changed and raises GitHubAPIError when the change failed.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .github import BoardIssue, GitHubClient

logger = logging.getLogger(__name__)


class MutationSink(Protocol):
    dry_run: bool

    def set_status(self, issue: BoardIssue, status: str) -> bool:
        ...

    def link_pull_request(self, issue: BoardIssue, pr_owner: str, pr_repo: str, pr_number: int) -> bool:
        ...

    def add_comment(self, issue: BoardIssue, body: str) -> bool:
        ...

    def add_label(self, issue: BoardIssue, label: str) -> bool:
        ...


class BoardMutationSink:
    """Applies changes to the project board."""

    dry_run = False

    def __init__(self, client: GitHubClient):
        self.client = client

    def set_status(self, issue: BoardIssue, status: str) -> bool:
        self.client.set_status(issue, status)
        return True

    def link_pull_request(self, issue: BoardIssue, pr_owner: str, pr_repo: str, pr_number: int) -> bool:
        self.client.link_pr_to_issue(issue, pr_owner, pr_repo, pr_number)
        return True

    def add_comment(self, issue: BoardIssue, body: str) -> bool:
        self.client.add_comment(issue, body)
        return True

    def add_label(self, issue: BoardIssue, label: str) -> bool:
        self.client.add_label(issue, label)
        return True


class DryRunSink:
    """Logs intended changes without touching the board."""

    dry_run = True

    def __init__(self):
        self.actions: list[str] = []

    def _would(self, action: str) -> bool:
        self.actions.append(action)
        logger.info(f"[DRY RUN] Would {action}")
        return False

    def set_status(self, issue: BoardIssue, status: str) -> bool:
        return self._would(f"move issue #{issue.number} ({issue.full_name}) to {status}")

    def link_pull_request(self, issue: BoardIssue, pr_owner: str, pr_repo: str, pr_number: int) -> bool:
        return self._would(f"link PR {pr_owner}/{pr_repo}#{pr_number} to issue #{issue.number}")

    def add_comment(self, issue: BoardIssue, body: str) -> bool:
        return self._would(f"comment on issue #{issue.number} ({len(body)} chars)")

    def add_label(self, issue: BoardIssue, label: str) -> bool:
        return self._would(f"label issue #{issue.number} as {label!r}")


def build_mutation_sink(client: GitHubClient, dry_run: bool = False) -> MutationSink:
    """Get the sink for the requested mode."""
    if dry_run:
        return DryRunSink()
    return BoardMutationSink(client)
