from __future__ import annotations

from datetime import datetime, timezone

import pytest

from projectagent.github import BoardIssue, GitHubAPIError, ProjectItem, PullRequest, Repository
from projectagent.similarity import SimilarityError


def make_issue(
    number: int,
    title: str = "",
    body: str = "",
    owner: str = "storacha",
    repo: str = "project",
    status: str = "In Progress",
    on_board: bool = True,
    updated_at: datetime | None = None,
) -> BoardIssue:
    return BoardIssue(
        number=number,
        title=title or f"Issue {number}",
        body=body,
        url=f"https://github.com/{owner}/{repo}/issues/{number}",
        updated_at=updated_at or datetime(2024, 6, 1, tzinfo=timezone.utc),
        repository_owner=owner,
        repository_name=repo,
        node_id=f"I_{number}",
        item=ProjectItem(id=f"PVTI_{number}", status=status) if on_board else None,
    )


class FakeBoard:
    """In-memory board keyed by lowercase owner/repo#number."""

    def __init__(self, issues=(), fetch_error: Exception | None = None, pull_requests=None):
        self.issues = {issue.key: issue for issue in issues}
        self.fetch_error = fetch_error
        self.lookups: list[str] = []
        self.inaccessible: set[str] = set()
        # "owner/repo" -> open PRs, for organization scans
        self.pull_requests: dict[str, list[PullRequest]] = dict(pull_requests or {})
        self.unlistable: set[str] = set()

    def get_org_repositories(self, org=None):
        return [Repository(*name.split("/")) for name in self.pull_requests]

    def get_open_pull_requests(self, owner, repo):
        name = f"{owner}/{repo}"
        if name in self.unlistable:
            raise GitHubAPIError("GitHub API error: 404 - not found", 404)
        return self.pull_requests[name]

    def get_issue_if_on_board(self, owner, repo, number):
        key = f"{owner.lower()}/{repo.lower()}#{number}"
        self.lookups.append(key)
        if key in self.inaccessible:
            raise GitHubAPIError("GitHub API error: 403 - forbidden", 403)
        return self.issues.get(key)

    def get_issues_by_statuses(self, statuses):
        if self.fetch_error:
            raise self.fetch_error
        return [
            issue for issue in self.issues.values()
            if issue.item is not None and issue.item.status in statuses
        ]


class RecordingSink:
    """Sink that records every mutation and can fail for chosen issues."""

    dry_run = False

    def __init__(self, fail_status=(), fail_link=(), fail_comment=(), fail_label=()):
        self.calls: list[tuple] = []
        self.fail_status = set(fail_status)
        self.fail_link = set(fail_link)
        self.fail_comment = set(fail_comment)
        self.fail_label = set(fail_label)

    def _apply(self, failures, issue, *call):
        self.calls.append(call)
        if issue.number in failures:
            raise GitHubAPIError("GitHub API error: 502 - bad gateway", 502)
        return True

    def set_status(self, issue, status):
        return self._apply(self.fail_status, issue, "set_status", issue.number, status)

    def link_pull_request(self, issue, pr_owner, pr_repo, pr_number):
        return self._apply(
            self.fail_link, issue, "link", issue.number, f"{pr_owner}/{pr_repo}#{pr_number}"
        )

    def add_comment(self, issue, body):
        return self._apply(self.fail_comment, issue, "comment", issue.number, body)

    def add_label(self, issue, label):
        return self._apply(self.fail_label, issue, "label", issue.number, label)

    def moved(self) -> list[int]:
        return [call[1] for call in self.calls if call[0] == "set_status"]


class TitleScorer:
    """Scores by the title of the second text; unknown titles score 0."""

    def __init__(self, scores: dict[str, float] | None = None, failing=()):
        self.scores = scores or {}
        self.failing = set(failing)
        self.calls: list[tuple[str, str]] = []

    def score(self, title_a, body_a, title_b, body_b):
        self.calls.append((title_a, title_b))
        if title_b in self.failing:
            raise SimilarityError("model unavailable")
        return self.scores.get(title_b, 0.0)


class PairScorer:
    """Scores unordered title pairs; unknown pairs score 0."""

    def __init__(self, scores: dict[frozenset, float] | None = None, failing=()):
        self.scores = scores or {}
        self.failing = {frozenset(pair) for pair in failing}
        self.calls: list[tuple[str, str]] = []

    def score(self, title_a, body_a, title_b, body_b):
        self.calls.append((title_a, title_b))
        pair = frozenset((title_a, title_b))
        if pair in self.failing:
            raise SimilarityError("model unavailable")
        return self.scores.get(pair, 0.0)


class CountingPacer:
    def __init__(self):
        self.waits = 0

    def wait(self):
        self.waits += 1


@pytest.fixture
def sink():
    return RecordingSink()
