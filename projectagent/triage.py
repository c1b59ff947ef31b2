"""
Stale issue triage.

Issues with no activity for longer than the staleness threshold get a
comment explaining why, then are moved to the stale status so the
board's active columns only show live work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from .github import BoardIssue, GitHubAPIError
from .pacing import Deadline, NoPacing, Pacer
from .sinks import MutationSink

logger = logging.getLogger(__name__)


STALE_COMMENT_TEMPLATE = """\
This issue has been automatically moved to **{status}** status.

**Reason:** No activity for {days} days (threshold: {threshold} days)

If this issue is still relevant and you'd like to work on it, please:
1. Comment on this issue with an update
2. Move it back to Backlog or another appropriate status
3. Consider if this should be moved to Icebox instead

---
*Automated by project-agent*"""


@dataclass
class TriageReport:
    """Results of a stale triage run."""
    issues_analyzed: int = 0
    stale_issues_found: int = 0
    issues_moved: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues_analyzed": self.issues_analyzed,
            "stale_issues_found": self.stale_issues_found,
            "issues_moved": self.issues_moved,
            "errors": list(self.errors),
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


def find_stale_issues(
    issues: list[BoardIssue],
    threshold_days: int,
    now: datetime | None = None,
) -> list[BoardIssue]:
    """Issues last updated before `now - threshold_days`. Issues with no timestamp are never stale."""
    cutoff = (now or _now()) - timedelta(days=threshold_days)
    return [
        issue for issue in issues
        if issue.updated_at is not None and issue.updated_at < cutoff
    ]


def days_idle(issue: BoardIssue, now: datetime | None = None) -> int:
    if issue.updated_at is None:
        return 0
    return int(((now or _now()) - issue.updated_at).total_seconds() // 86400)


def triage_stale_issues(
    issues: list[BoardIssue],
    sink: MutationSink,
    *,
    threshold_days: int,
    stale_status: str = "Stuck / Dead Issue",
    pacer: Pacer | None = None,
    deadline: Deadline | None = None,
    now: datetime | None = None,
) -> TriageReport:
    """
    Comment on and move every stale issue.

    A failure on one issue is recorded and the run continues with the next.
    """
    pacer = pacer or NoPacing()
    deadline = deadline or Deadline()
    now = now or _now()

    report = TriageReport(issues_analyzed=len(issues))

    logger.info("Analyzing issue staleness...")
    stale = [issue for issue in find_stale_issues(issues, threshold_days, now) if issue.is_on_board]
    report.stale_issues_found = len(stale)
    logger.info(f"Found {len(stale)} stale issues (>{threshold_days} days)")

    for index, issue in enumerate(stale):
        if index:
            pacer.wait()
        deadline.check(f"move stale issue #{issue.number}")

        comment = STALE_COMMENT_TEMPLATE.format(
            status=stale_status,
            days=days_idle(issue, now),
            threshold=threshold_days,
        )
        try:
            sink.add_comment(issue, comment)
            moved = sink.set_status(issue, stale_status)
        except GitHubAPIError as e:
            message = f"Failed to move issue #{issue.number}: {e}"
            logger.error(message)
            report.errors.append(message)
            continue

        if moved:
            report.issues_moved += 1
            logger.info(f"Moved issue #{issue.number} to {stale_status}")

    return report
