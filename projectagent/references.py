"""
Issue reference extraction for project-agent.

Scans a pull request's title and body for pointers to issues:
- Keyword references: "fixes #12", "closes #3", "resolved #40"
- Cross-repository references: "owner/repo#12"
- URL references: "https://github.com/owner/repo/issues/12"
- Bare references: "#12"

No network access; the result is a deduplicated collection keyed by
the lowercase "owner/repo#number" form.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


# Issue numbers are GraphQL Int values on GitHub
MAX_ISSUE_NUMBER = 2**31 - 1

KEYWORD_PATTERN = re.compile(
    r"\b(fix|fixes|fixed|close|closes|closed|resolve|resolves|resolved)\s+#(\d+)",
    re.IGNORECASE,
)
CROSS_REPO_PATTERN = re.compile(r"\b([a-zA-Z0-9_-]+)/([a-zA-Z0-9_-]+)#(\d+)\b")
URL_PATTERN = re.compile(
    r"https?://github\.com/([a-zA-Z0-9_-]+)/([a-zA-Z0-9_-]+)/issues/(\d+)"
)
BARE_PATTERN = re.compile(r"\B#(\d+)\b")


@dataclass(frozen=True)
class IssueReference:
    """A pointer to an issue found in PR text."""
    owner: str
    repo: str
    number: int
    is_explicit: bool = False  # referenced through fixes/closes/resolves

    @property
    def key(self) -> str:
        return reference_key(self.owner, self.repo, self.number)

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}#{self.number}"


def reference_key(owner: str, repo: str, number: int) -> str:
    """Normalized identity used for deduplication."""
    return f"{owner.lower()}/{repo.lower()}#{number}"


def parse_issue_number(raw: str) -> int | None:
    """Parse a captured number, returning None for values no issue can have."""
    try:
        number = int(raw)
    except ValueError:
        return None
    if number <= 0 or number > MAX_ISSUE_NUMBER:
        return None
    return number


def _claim(refs: dict[str, IssueReference], ref: IssueReference) -> None:
    # First strategy to claim a key keeps it, except that an explicit
    # reference always replaces an implicit one.
    existing = refs.get(ref.key)
    if existing is None or (ref.is_explicit and not existing.is_explicit):
        refs[ref.key] = ref


def extract_references(
    title: str | None,
    body: str | None,
    default_owner: str,
    default_repo: str,
) -> list[IssueReference]:
    """
    Extract issue references from a PR title and body.

    Strategies run in precedence order (keyword, cross-repo, URL, bare);
    a later strategy never overrides a key an earlier one claimed.
    Keyword and bare references are attributed to the default repository.

    Args:
        title: PR title
        body: PR body/description
        default_owner: Owner used for references without an explicit repository
        default_repo: Repository used for references without an explicit repository

    Returns:
        Deduplicated list of IssueReference objects (order is not meaningful)
    """
    text = f"{title or ''}\n{body or ''}"
    refs: dict[str, IssueReference] = {}

    for match in KEYWORD_PATTERN.finditer(text):
        number = parse_issue_number(match.group(2))
        if number is None:
            continue
        _claim(refs, IssueReference(default_owner, default_repo, number, is_explicit=True))

    for pattern in (CROSS_REPO_PATTERN, URL_PATTERN):
        for match in pattern.finditer(text):
            number = parse_issue_number(match.group(3))
            if number is None:
                continue
            _claim(refs, IssueReference(match.group(1), match.group(2), number))

    for match in BARE_PATTERN.finditer(text):
        number = parse_issue_number(match.group(1))
        if number is None:
            continue
        _claim(refs, IssueReference(default_owner, default_repo, number))

    return list(refs.values())
