"""
GitHub API client for project-agent.

Reads and updates a GitHub Projects (v2) board:
- Project metadata (Status field and its options), fetched once per client
- Board issues filtered by Status
- Single-issue lookup with board membership check
- Status moves, comments and labels
- Organization repositories and their open pull requests

Uses GITHUB_TOKEN environment variable for authentication.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import quote

import requests

from .pacing import Deadline


logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_GRAPHQL_URL = f"{GITHUB_API_BASE}/graphql"
MAX_RETRIES = 3
RETRY_DELAY = 1.0
REQUEST_TIMEOUT = 30
MIN_REQUEST_TIMEOUT = 1.0
LABEL_COLOR = "d4c5f9"


class GitHubAPIError(Exception):
    """Error from GitHub API."""
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(GitHubAPIError):
    """Rate limit exceeded."""
    def __init__(self, reset_time: int | None = None):
        super().__init__("GitHub API rate limit exceeded", 403)
        self.reset_time = reset_time


@dataclass
class ProjectItem:
    """Board-specific metadata for an issue."""
    id: str
    status: str = ""
    status_option_id: str = ""
    status_field_id: str = ""


@dataclass
class BoardIssue:
    """An issue together with its project board item."""
    number: int
    title: str
    body: str = ""
    url: str = ""
    updated_at: datetime | None = None
    assignees: list[str] = field(default_factory=list)
    repository_owner: str = ""
    repository_name: str = ""
    repository_id: str = ""
    node_id: str = ""
    item: ProjectItem | None = None

    @property
    def full_name(self) -> str:
        return f"{self.repository_owner}/{self.repository_name}"

    @property
    def key(self) -> str:
        return f"{self.repository_owner.lower()}/{self.repository_name.lower()}#{self.number}"

    @property
    def is_on_board(self) -> bool:
        """Only issues with a project item can be moved on the board."""
        return self.item is not None and bool(self.item.id)

    def __str__(self) -> str:
        return f"{self.full_name}#{self.number}"


@dataclass
class Repository:
    """A repository in the organization."""
    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass
class PullRequest:
    """An open pull request."""
    number: int
    title: str
    body: str = ""
    url: str = ""
    author: str = ""


@dataclass
class ProjectMetadata:
    """Project node id and Status field layout."""
    project_id: str
    status_field_id: str
    status_options: dict[str, str] = field(default_factory=dict)  # name -> option id


PROJECT_METADATA_QUERY = """
query($org: String!, $number: Int!) {
  organization(login: $org) {
    projectV2(number: $number) {
      id
      fields(first: 50) {
        nodes {
          ... on ProjectV2SingleSelectField {
            id
            name
            options { id name }
          }
        }
      }
    }
  }
}
"""

PROJECT_ITEMS_QUERY = """
query($projectId: ID!, $cursor: String, $statusField: String!) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          id
          content {
            __typename
            ... on Issue {
              id
              number
              title
              body
              url
              updatedAt
              assignees(first: 10) { nodes { login } }
              repository { id name owner { login } }
            }
          }
          fieldValueByName(name: $statusField) {
            ... on ProjectV2ItemFieldSingleSelectValue { optionId name }
          }
        }
      }
    }
  }
}
"""

ISSUE_WITH_ITEMS_QUERY = """
query($owner: String!, $repo: String!, $number: Int!, $statusField: String!) {
  repository(owner: $owner, name: $repo) {
    id
    name
    owner { login }
    issue(number: $number) {
      id
      number
      title
      body
      url
      updatedAt
      assignees(first: 10) { nodes { login } }
      projectItems(first: 20) {
        nodes {
          id
          project { id }
          fieldValueByName(name: $statusField) {
            ... on ProjectV2ItemFieldSingleSelectValue { optionId name }
          }
        }
      }
    }
  }
}
"""

ORG_REPOSITORIES_QUERY = """
query($org: String!, $cursor: String) {
  organization(login: $org) {
    repositories(first: 100, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes { name owner { login } }
    }
  }
}
"""

OPEN_PULL_REQUESTS_QUERY = """
query($owner: String!, $name: String!, $cursor: String) {
  repository(owner: $owner, name: $name) {
    pullRequests(first: 100, states: OPEN, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes { number title body url author { login } }
    }
  }
}
"""

UPDATE_STATUS_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(
    input: {projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: {singleSelectOptionId: $optionId}}
  ) {
    projectV2Item { id }
  }
}
"""

ADD_COMMENT_MUTATION = """
mutation($subjectId: ID!, $body: String!) {
  addComment(input: {subjectId: $subjectId, body: $body}) {
    commentEdge { node { id } }
  }
}
"""


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO timestamp ("2024-01-01T00:00:00Z")."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class GitHubClient:
    """GitHub GraphQL/REST client bound to one organization project board."""

    def __init__(
        self,
        org: str,
        project_number: int,
        token: str | None = None,
        status_field: str = "Status",
        deadline: Deadline | None = None,
    ):
        self.org = org
        self.project_number = project_number
        self.status_field = status_field
        self.deadline = deadline or Deadline()
        self.token = token or os.environ.get("GITHUB_TOKEN")
        self.session = requests.Session()
        self._metadata: ProjectMetadata | None = None

        if self.token:
            self.session.headers["Authorization"] = f"Bearer {self.token}"

        self.session.headers["Accept"] = "application/vnd.github+json"
        self.session.headers["User-Agent"] = "project-agent/0.1.0"

    def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        allow_status: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> requests.Response:
        """Make an API request with retry and rate limit handling."""
        if not url.startswith("http"):
            url = f"{GITHUB_API_BASE}{url}"

        for attempt in range(MAX_RETRIES):
            self.deadline.check(f"{method} {url}")
            try:
                response = self.session.request(
                    method, url, params=params, timeout=self._timeout(), **kwargs
                )
            except requests.RequestException as e:
                if attempt < MAX_RETRIES - 1:
                    time.sleep(RETRY_DELAY * (attempt + 1))
                    continue
                raise GitHubAPIError(f"Request failed: {e}")

            # Check rate limit
            if response.status_code == 403:
                remaining = response.headers.get("X-RateLimit-Remaining")
                if remaining == "0":
                    reset_time = int(response.headers.get("X-RateLimit-Reset", 0))
                    raise RateLimitError(reset_time)

            if response.status_code in allow_status:
                return response

            if response.status_code >= 400:
                raise GitHubAPIError(
                    f"GitHub API error: {response.status_code} - {response.text}",
                    response.status_code,
                )

            return response

        raise GitHubAPIError("Max retries exceeded")

    def _timeout(self) -> float:
        """Per-request timeout, never past the run deadline."""
        remaining = self.deadline.remaining()
        if remaining is None:
            return REQUEST_TIMEOUT
        return max(MIN_REQUEST_TIMEOUT, min(REQUEST_TIMEOUT, remaining))

    def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query or mutation and return its data payload."""
        response = self._request(
            "POST", GITHUB_GRAPHQL_URL, json={"query": query, "variables": variables}
        )
        payload = response.json()
        if payload.get("errors"):
            messages = "; ".join(
                str(error.get("message", error)) for error in payload["errors"]
            )
            raise GitHubAPIError(f"GraphQL error: {messages}")
        return payload.get("data") or {}

    # ------------------------------------------------------------------
    # Board reads
    # ------------------------------------------------------------------

    @property
    def metadata(self) -> ProjectMetadata:
        """Project id and Status field options, fetched on first use."""
        if self._metadata is None:
            self._metadata = self._fetch_project_metadata()
        return self._metadata

    def _fetch_project_metadata(self) -> ProjectMetadata:
        data = self._graphql(
            PROJECT_METADATA_QUERY,
            {"org": self.org, "number": self.project_number},
        )
        project = (data.get("organization") or {}).get("projectV2")
        if not project:
            raise GitHubAPIError(
                f"Project {self.org}#{self.project_number} not found or not accessible"
            )

        for node in project.get("fields", {}).get("nodes", []):
            if node and node.get("name") == self.status_field:
                options = {
                    option["name"]: option["id"]
                    for option in node.get("options", [])
                }
                return ProjectMetadata(
                    project_id=project["id"],
                    status_field_id=node["id"],
                    status_options=options,
                )

        raise GitHubAPIError(f"Could not find {self.status_field} field in project")

    def get_issues_by_statuses(self, statuses: list[str] | set[str]) -> list[BoardIssue]:
        """
        List board issues whose Status is one of `statuses`.

        Pull requests and draft items on the board are ignored.
        """
        wanted = set(statuses)
        metadata = self.metadata
        issues: list[BoardIssue] = []
        cursor: str | None = None

        while True:
            data = self._graphql(
                PROJECT_ITEMS_QUERY,
                {
                    "projectId": metadata.project_id,
                    "cursor": cursor,
                    "statusField": self.status_field,
                },
            )
            items = (data.get("node") or {}).get("items") or {}

            for node in items.get("nodes", []):
                content = node.get("content") or {}
                if content.get("__typename") != "Issue":
                    continue

                status_value = node.get("fieldValueByName") or {}
                status = status_value.get("name") or ""
                if status not in wanted:
                    continue

                issues.append(self._parse_issue(
                    content,
                    content.get("repository") or {},
                    ProjectItem(
                        id=node.get("id") or "",
                        status=status,
                        status_option_id=status_value.get("optionId") or "",
                        status_field_id=metadata.status_field_id,
                    ),
                ))

            page_info = items.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        return issues

    def get_issue_if_on_board(self, owner: str, repo: str, number: int) -> BoardIssue | None:
        """
        Fetch an issue and its item on this project.

        Returns None if the issue does not exist or is not on the board.
        """
        metadata = self.metadata
        try:
            data = self._graphql(
                ISSUE_WITH_ITEMS_QUERY,
                {
                    "owner": owner,
                    "repo": repo,
                    "number": number,
                    "statusField": self.status_field,
                },
            )
        except GitHubAPIError as e:
            if e.status_code == 404 or "Could not resolve" in str(e):
                return None
            raise

        repository = data.get("repository") or {}
        issue = repository.get("issue")
        if not issue:
            return None

        for node in (issue.get("projectItems") or {}).get("nodes", []):
            if (node.get("project") or {}).get("id") != metadata.project_id:
                continue
            status_value = node.get("fieldValueByName") or {}
            return self._parse_issue(
                issue,
                repository,
                ProjectItem(
                    id=node.get("id") or "",
                    status=status_value.get("name") or "",
                    status_option_id=status_value.get("optionId") or "",
                    status_field_id=metadata.status_field_id,
                ),
            )

        return None

    def get_org_repositories(self, org: str | None = None) -> list[Repository]:
        """List every repository in the organization (the board's by default)."""
        org = org or self.org
        repositories: list[Repository] = []
        cursor: str | None = None

        while True:
            data = self._graphql(ORG_REPOSITORIES_QUERY, {"org": org, "cursor": cursor})
            organization = data.get("organization")
            if not organization:
                raise GitHubAPIError(f"Organization {org} not found or not accessible")
            page = organization.get("repositories") or {}

            for node in page.get("nodes", []):
                if not node:
                    continue
                repositories.append(Repository(
                    owner=(node.get("owner") or {}).get("login", org),
                    name=node.get("name", ""),
                ))

            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        return repositories

    def get_open_pull_requests(self, owner: str, repo: str) -> list[PullRequest]:
        """List open pull requests in a repository."""
        pull_requests: list[PullRequest] = []
        cursor: str | None = None

        while True:
            data = self._graphql(
                OPEN_PULL_REQUESTS_QUERY,
                {"owner": owner, "name": repo, "cursor": cursor},
            )
            repository = data.get("repository")
            if not repository:
                raise GitHubAPIError(f"Repository {owner}/{repo} not found or not accessible")
            page = repository.get("pullRequests") or {}

            for node in page.get("nodes", []):
                if not node:
                    continue
                pull_requests.append(PullRequest(
                    number=node.get("number", 0),
                    title=node.get("title") or "",
                    body=node.get("body") or "",
                    url=node.get("url") or "",
                    author=(node.get("author") or {}).get("login", ""),
                ))

            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        return pull_requests

    def _parse_issue(
        self,
        data: dict[str, Any],
        repository: dict[str, Any],
        item: ProjectItem,
    ) -> BoardIssue:
        """Parse raw issue data into a BoardIssue object."""
        assignees = (data.get("assignees") or {}).get("nodes", [])
        owner = repository.get("owner") or {}

        return BoardIssue(
            number=data.get("number", 0),
            title=data.get("title", ""),
            body=data.get("body") or "",
            url=data.get("url", ""),
            updated_at=parse_timestamp(data.get("updatedAt")),
            assignees=[a.get("login", "") for a in assignees if a.get("login")],
            repository_owner=owner.get("login", ""),
            repository_name=repository.get("name", ""),
            repository_id=repository.get("id", ""),
            node_id=data.get("id", ""),
            item=item,
        )

    # ------------------------------------------------------------------
    # Board writes
    # ------------------------------------------------------------------

    def set_status(self, issue: BoardIssue, status_name: str) -> None:
        """Move an issue's board item to the named Status option."""
        if not issue.is_on_board:
            raise GitHubAPIError(f"Issue {issue} has no item on the project board")

        metadata = self.metadata
        option_id = metadata.status_options.get(status_name)
        if option_id is None:
            raise GitHubAPIError(f"Status option {status_name!r} not found")

        self._graphql(
            UPDATE_STATUS_MUTATION,
            {
                "projectId": metadata.project_id,
                "itemId": issue.item.id,
                "fieldId": metadata.status_field_id,
                "optionId": option_id,
            },
        )
        issue.item.status = status_name
        issue.item.status_option_id = option_id

    def add_comment(self, issue: BoardIssue, body: str) -> None:
        """Add a comment to an issue."""
        if not issue.node_id:
            raise GitHubAPIError(f"Issue {issue} has no node id")
        self._graphql(ADD_COMMENT_MUTATION, {"subjectId": issue.node_id, "body": body})

    def link_pr_to_issue(
        self,
        issue: BoardIssue,
        pr_owner: str,
        pr_repo: str,
        pr_number: int,
    ) -> None:
        """
        Create a cross-reference from an issue to a pull request.

        A short comment naming the PR makes it appear in the issue timeline.
        """
        self.add_comment(issue, f"Linked to PR {pr_owner}/{pr_repo}#{pr_number}")

    def add_label(self, issue: BoardIssue, label: str) -> None:
        """Add a label to an issue, creating the label in its repository if needed."""
        repo_path = f"/repos/{issue.repository_owner}/{issue.repository_name}"

        response = self._request(
            "GET", f"{repo_path}/labels/{quote(label, safe='')}", allow_status=(404,)
        )
        if response.status_code == 404:
            logger.info(f"Creating label {label!r} in {issue.full_name}")
            self._request(
                "POST",
                f"{repo_path}/labels",
                json={"name": label, "color": LABEL_COLOR},
            )

        self._request(
            "POST",
            f"{repo_path}/issues/{issue.number}/labels",
            json={"labels": [label]},
        )
