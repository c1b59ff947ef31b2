"""
project-agent - Keep a GitHub Projects board in step with the work happening on it.

A CLI tool that:
1. Links pull requests to the board issues they reference (or, failing
   that, the issue they most resemble) and moves them to PR Review
2. Moves issues with no recent activity to Stuck / Dead Issue
3. Labels groups of likely duplicate issues for review

Usage:
    project-agent link-pr            # Link a PR (PR_REPO, PR_NUMBER, ... from env)
    project-agent triage-stale       # Move stale issues off the active board
    project-agent detect-duplicates  # Label possible duplicates
"""

__version__ = "0.1.0"
__author__ = "project-agent"
