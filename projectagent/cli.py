"""
project-agent CLI - Automations for a GitHub Projects board.

Commands:
    link-pr            - Link a pull request to its issues and move them to review
    triage-stale       - Move issues with no recent activity to the stale status
    detect-duplicates  - Label groups of likely duplicate issues
    scan-open-prs      - Link every open PR in the organization to its issues
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from .config import get_repo_root

# Load .env file from current directory, then repo root
load_dotenv(Path.cwd() / ".env")
load_dotenv(get_repo_root() / ".env")

from . import __version__
from .config import AgentConfig, ConfigError
from .duplicates import DuplicateReport, detect_duplicates
from .github import GitHubAPIError, GitHubClient
from .linking import BoardFetchError, link_pull_request_to_issues
from .pacing import Deadline, DeadlineExceeded, make_pacer
from .report import RunReport
from .scan import ScanReport, scan_open_prs
from .similarity import get_similarity_scorer
from .sinks import build_mutation_sink
from .triage import TriageReport, triage_stale_issues

logger = logging.getLogger(__name__)

FATAL_ERRORS = (ConfigError, BoardFetchError, GitHubAPIError, DeadlineExceeded)

RULE = "=" * 60


def load_config(dry_run: bool = False) -> AgentConfig:
    """Load configuration for a board command; --dry-run can only turn dry run on."""
    config = AgentConfig.load(get_repo_root())
    config.require_board()
    if dry_run:
        config.dry_run = True
    return config


def build_client(config: AgentConfig, deadline: Deadline | None = None) -> GitHubClient:
    return GitHubClient(
        org=config.board.org,
        project_number=config.board.project_number,
        token=config.board.token,
        status_field=config.board.status_field,
        deadline=deadline,
    )


def parse_pr_repo(value: str) -> tuple[str, str]:
    """Split "owner/repo"."""
    parts = value.split("/")
    if len(parts) != 2 or not all(parts):
        raise ConfigError(f"Invalid PR_REPO format, expected owner/repo: {value!r}")
    return parts[0], parts[1]


def _fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def _finish(report, as_json: bool, strict: bool, render) -> None:
    """Print the report and exit non-zero only for warnings under --strict."""
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        render(report)

    if report.has_errors and strict:
        sys.exit(1)


def _print_errors(errors) -> None:
    if errors:
        click.echo(f"\nErrors encountered: {len(errors)}")
        for message in errors:
            click.echo(f"  - {message}")


def print_link_report(report: RunReport) -> None:
    click.echo(f"\n{RULE}")
    click.echo("PR LINKING REPORT" + (" (DRY RUN)" if report.dry_run else ""))
    click.echo(RULE)
    click.echo(f"PR: {report.pr}\n")
    click.echo(f"Direct References Found: {report.direct_references_found}")
    click.echo(f"Issues Linked (Direct): {report.issues_linked_direct}")
    if report.semantic_match_found:
        click.echo("Semantic Match Found: Yes")
        click.echo(f"Issues Linked (Semantic): {report.issues_linked_semantic}")
        semantic = report.outcome.semantic
        click.echo(f"  {semantic.issue} (similarity: {semantic.score:.2f})")
    else:
        click.echo("Semantic Match Found: No")
    if report.skipped_comparisons:
        click.echo(f"Skipped Comparisons: {report.skipped_comparisons}")
    click.echo(f"\nTotal Issues Moved to PR Review: {report.issues_moved_to_review}")
    _print_errors(report.errors)
    click.echo(RULE)


def print_triage_report(report: TriageReport) -> None:
    click.echo(f"\n{RULE}")
    click.echo("STALE TRIAGE REPORT")
    click.echo(RULE)
    click.echo(f"Issues Analyzed: {report.issues_analyzed}")
    click.echo(f"Stale Issues Found: {report.stale_issues_found}")
    click.echo(f"Issues Moved: {report.issues_moved}")
    _print_errors(report.errors)
    click.echo(RULE)


def print_duplicate_report(report: DuplicateReport) -> None:
    click.echo(f"\n{RULE}")
    click.echo("DUPLICATE DETECTION REPORT")
    click.echo(RULE)
    click.echo(f"Issues Analyzed: {report.issues_analyzed}")
    click.echo(f"Duplicate Groups: {len(report.groups)}")
    for group in report.groups:
        members = ", ".join(str(issue) for issue in group.issues)
        click.echo(f"  - {members} (similarity >= {group.similarity:.2f})")
    click.echo(f"Issues Labeled: {report.issues_labeled}")
    if report.skipped_comparisons:
        click.echo(f"Skipped Comparisons: {report.skipped_comparisons}")
    _print_errors(report.errors)
    click.echo(RULE)


def print_scan_report(report: ScanReport) -> None:
    click.echo(f"\n{RULE}")
    click.echo("SCAN SUMMARY REPORT" + (" (DRY RUN)" if report.dry_run else ""))
    click.echo(RULE)
    click.echo(f"Repositories scanned: {report.repositories_scanned}")
    click.echo(f"Total PRs processed: {report.pull_requests_scanned}")
    click.echo(f"Total issues linked: {report.issues_linked}")
    click.echo(f"Total issues moved to PR Review: {report.issues_moved}")
    if report.repositories_with_errors:
        click.echo(f"\nRepositories with errors: {report.repositories_with_errors}")
    _print_errors(report.errors)
    click.echo(RULE)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool):
    """project-agent - Automations for a GitHub Projects board."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command("link-pr")
@click.option("--repo", "pr_repo", envvar="PR_REPO", help="PR repository (owner/repo)")
@click.option("--number", "pr_number", envvar="PR_NUMBER", type=int, help="PR number")
@click.option("--author", envvar="PR_AUTHOR", default="", help="PR author login")
@click.option("--title", envvar="PR_TITLE", default="", help="PR title")
@click.option("--body", envvar="PR_BODY", default="", help="PR body")
@click.option("--dry-run", is_flag=True, help="Log board changes instead of making them")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--strict", is_flag=True, help="Exit non-zero when any issue failed")
def link_pr(
    pr_repo: str | None,
    pr_number: int | None,
    author: str,
    title: str,
    body: str,
    dry_run: bool,
    as_json: bool,
    strict: bool,
):
    """Link a pull request to its issues and move them to PR Review.

    Issues the PR references directly are moved. If none of them are on
    the board, the single most similar active issue is used instead and
    gets a comment linking back to the PR.

    Examples:

        PR_REPO=org/repo PR_NUMBER=42 project-agent link-pr
        project-agent link-pr --repo org/repo --number 42 --title "Fix #7" --dry-run
    """
    try:
        config = load_config(dry_run)
        if not pr_repo or pr_number is None:
            raise ConfigError("PR_REPO and PR_NUMBER are required")
        pr_owner, pr_repo_name = parse_pr_repo(pr_repo)

        if author and not config.is_team_member(author):
            logger.info(f"Skipping PR from external contributor: {author}")
            click.echo(f"PR linking skipped: {author} is not a team member")
            return

        deadline = Deadline(config.linking.timeout_seconds)
        client = build_client(config, deadline)
        report = link_pull_request_to_issues(
            pr_owner,
            pr_repo_name,
            pr_number,
            title,
            body,
            client,
            build_mutation_sink(client, config.dry_run),
            get_similarity_scorer(config.llm),
            threshold=config.linking.similarity_threshold,
            active_statuses=config.linking.active_statuses,
            review_status=config.board.review_status,
            scoring_pacer=make_pacer(config.linking.score_delay),
            mutation_pacer=make_pacer(config.linking.mutation_delay),
            deadline=deadline,
        )
    except FATAL_ERRORS as e:
        _fail(e)
        return

    _finish(report, as_json, strict, print_link_report)


@main.command("triage-stale")
@click.option("--dry-run", is_flag=True, help="Log board changes instead of making them")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--strict", is_flag=True, help="Exit non-zero when any issue failed")
def triage_stale(dry_run: bool, as_json: bool, strict: bool):
    """Move issues with no recent activity to the stale status."""
    try:
        config = load_config(dry_run)
        client = build_client(config)
        issues = client.get_issues_by_statuses(config.board.target_statuses)
        logger.info(f"Fetched {len(issues)} issues from the board")
        report = triage_stale_issues(
            issues,
            build_mutation_sink(client, config.dry_run),
            threshold_days=config.triage.staleness_threshold_days,
            stale_status=config.board.stale_status,
            pacer=make_pacer(config.triage.mutation_delay),
        )
    except FATAL_ERRORS as e:
        _fail(e)
        return

    _finish(report, as_json, strict, print_triage_report)


@main.command("detect-duplicates")
@click.option("--dry-run", is_flag=True, help="Log board changes instead of making them")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--strict", is_flag=True, help="Exit non-zero when any issue failed")
def detect_duplicates_command(dry_run: bool, as_json: bool, strict: bool):
    """Label groups of likely duplicate issues."""
    try:
        config = load_config(dry_run)
        client = build_client(config)
        issues = client.get_issues_by_statuses(config.board.target_statuses)
        logger.info(f"Fetched {len(issues)} issues from the board")
        report = detect_duplicates(
            issues,
            get_similarity_scorer(config.llm),
            build_mutation_sink(client, config.dry_run),
            threshold=config.duplicates.similarity_threshold,
            label=config.duplicates.label,
            pacer=make_pacer(config.duplicates.score_delay),
            mutation_pacer=make_pacer(config.duplicates.mutation_delay),
        )
    except FATAL_ERRORS as e:
        _fail(e)
        return

    _finish(report, as_json, strict, print_duplicate_report)


@main.command("scan-open-prs")
@click.option("--org", default=None, help="Organization to scan (default: SCAN_ORG, then the board organization)")
@click.option("--dry-run", is_flag=True, help="Log board changes instead of making them")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--strict", is_flag=True, help="Exit non-zero when any PR or issue failed")
def scan_open_prs_command(org: str | None, dry_run: bool, as_json: bool, strict: bool):
    """Link every open PR in the organization to its issues.

    Catches PRs whose linking was missed, for example because they were
    opened before the agent was installed.
    """
    try:
        config = load_config(dry_run)
        deadline = Deadline(config.scan.timeout_seconds)
        client = build_client(config, deadline)
        report = scan_open_prs(
            org or config.scan.org or config.board.org,
            client,
            build_mutation_sink(client, config.dry_run),
            get_similarity_scorer(config.llm),
            threshold=config.linking.similarity_threshold,
            active_statuses=config.linking.active_statuses,
            review_status=config.board.review_status,
            scoring_pacer=make_pacer(config.linking.score_delay),
            mutation_pacer=make_pacer(config.linking.mutation_delay),
            pr_pacer=make_pacer(config.scan.pr_delay),
            repo_pacer=make_pacer(config.scan.repo_delay),
            deadline=deadline,
        )
    except FATAL_ERRORS as e:
        _fail(e)
        return

    _finish(report, as_json, strict, print_scan_report)


if __name__ == "__main__":
    main()
