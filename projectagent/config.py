"""
Configuration management for project-agent.

Loads and validates:
- projectagent.yml: Board, thresholds and task settings (optional)
- Environment variables: override file values (GITHUB_ORG, PROJECT_NUMBER, ...)
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml


CONFIG_FILENAME = "projectagent.yml"

DEFAULT_TARGET_STATUSES = ["Inbox", "Backlog", "Sprint Backlog", "In Progress", "PR Review"]
DEFAULT_ACTIVE_STATUSES = ["In Progress", "Sprint Backlog"]


class ConfigError(ValueError):
    """Invalid or incomplete configuration."""


@dataclass
class BoardConfig:
    """The GitHub Projects (v2) board the agent maintains."""
    org: str = ""
    project_number: int | None = None
    token: str = ""  # from GITHUB_TOKEN only, never the config file
    status_field: str = "Status"
    review_status: str = "PR Review"
    stale_status: str = "Stuck / Dead Issue"
    target_statuses: list[str] = field(default_factory=lambda: list(DEFAULT_TARGET_STATUSES))


@dataclass
class LinkingConfig:
    """PR-to-issue linking settings."""
    # Stricter than duplicate detection: a false positive moves the wrong issue
    similarity_threshold: float = 0.95
    active_statuses: list[str] = field(default_factory=lambda: list(DEFAULT_ACTIVE_STATUSES))
    score_delay: float = 0.2
    mutation_delay: float = 1.0
    timeout_seconds: float | None = None


@dataclass
class TriageConfig:
    """Stale issue triage settings."""
    staleness_threshold_days: int = 180
    mutation_delay: float = 2.0


@dataclass
class DuplicatesConfig:
    """Duplicate detection settings."""
    similarity_threshold: float = 0.85
    label: str = "possible duplicate"
    score_delay: float = 0.2
    mutation_delay: float = 2.0


@dataclass
class ScanConfig:
    """Organization-wide open PR scan settings."""
    org: str = ""  # defaults to the board organization
    pr_delay: float = 2.0
    repo_delay: float = 3.0
    timeout_seconds: float | None = None


@dataclass
class LLMConfig:
    """LLM configuration using LiteLLM."""
    enabled: bool = True
    scorer: str = "llm"  # llm (judge prompt) or embedding (cosine similarity)
    model: str = "gemini/gemini-2.0-flash"  # LiteLLM model string
    embedding_model: str = "text-embedding-3-small"
    temperature: float = 0.1
    max_tokens: int = 500
    # API keys are read from environment (GEMINI_API_KEY, OPENAI_API_KEY, etc.)


@dataclass
class AgentConfig:
    """Complete project-agent configuration."""
    board: BoardConfig = field(default_factory=BoardConfig)
    linking: LinkingConfig = field(default_factory=LinkingConfig)
    triage: TriageConfig = field(default_factory=TriageConfig)
    duplicates: DuplicatesConfig = field(default_factory=DuplicatesConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    dry_run: bool = False
    team_members: list[str] = field(default_factory=list)  # GitHub logins

    @classmethod
    def load(
        cls,
        repo_root: Path,
        environ: Mapping[str, str] | None = None,
    ) -> "AgentConfig":
        """Load configuration from repo root directory, then apply environment overrides."""
        config = cls()

        config_path = repo_root / CONFIG_FILENAME
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigError(f"{config_path} must contain a mapping")
            config = cls._parse_config(data)

        config.apply_env(os.environ if environ is None else environ)
        config.validate()
        return config

    @classmethod
    def _parse_config(cls, data: dict[str, Any]) -> "AgentConfig":
        """Parse configuration dictionary."""
        config = cls()

        board_data = data.get("board", {})
        config.board = BoardConfig(
            org=board_data.get("org", ""),
            project_number=board_data.get("project_number"),
            status_field=board_data.get("status_field", "Status"),
            review_status=board_data.get("review_status", "PR Review"),
            stale_status=board_data.get("stale_status", "Stuck / Dead Issue"),
            target_statuses=board_data.get("target_statuses", list(DEFAULT_TARGET_STATUSES)),
        )

        linking_data = data.get("linking", {})
        config.linking = LinkingConfig(
            similarity_threshold=linking_data.get("similarity_threshold", 0.95),
            active_statuses=linking_data.get("active_statuses", list(DEFAULT_ACTIVE_STATUSES)),
            score_delay=linking_data.get("score_delay", 0.2),
            mutation_delay=linking_data.get("mutation_delay", 1.0),
            timeout_seconds=linking_data.get("timeout_seconds"),
        )

        triage_data = data.get("triage", {})
        config.triage = TriageConfig(
            staleness_threshold_days=triage_data.get("staleness_threshold_days", 180),
            mutation_delay=triage_data.get("mutation_delay", 2.0),
        )

        duplicates_data = data.get("duplicates", {})
        config.duplicates = DuplicatesConfig(
            similarity_threshold=duplicates_data.get("similarity_threshold", 0.85),
            label=duplicates_data.get("label", "possible duplicate"),
            score_delay=duplicates_data.get("score_delay", 0.2),
            mutation_delay=duplicates_data.get("mutation_delay", 2.0),
        )

        scan_data = data.get("scan", {})
        config.scan = ScanConfig(
            org=scan_data.get("org", ""),
            pr_delay=scan_data.get("pr_delay", 2.0),
            repo_delay=scan_data.get("repo_delay", 3.0),
            timeout_seconds=scan_data.get("timeout_seconds"),
        )

        llm_data = data.get("llm", {})
        config.llm = LLMConfig(
            enabled=llm_data.get("enabled", True),
            scorer=llm_data.get("scorer", "llm"),
            model=llm_data.get("model", "gemini/gemini-2.0-flash"),
            embedding_model=llm_data.get("embedding_model", "text-embedding-3-small"),
            temperature=llm_data.get("temperature", 0.1),
            max_tokens=llm_data.get("max_tokens", 500),
        )

        config.dry_run = bool(data.get("dry_run", False))
        config.team_members = list(data.get("team_members", []))

        return config

    def apply_env(self, environ: Mapping[str, str]) -> None:
        """Override settings from environment variables."""
        if environ.get("GITHUB_TOKEN"):
            self.board.token = environ["GITHUB_TOKEN"]
        if environ.get("GITHUB_ORG"):
            self.board.org = environ["GITHUB_ORG"]
        if environ.get("PROJECT_NUMBER"):
            self.board.project_number = _parse_int(environ, "PROJECT_NUMBER")
        if environ.get("SCAN_ORG"):
            self.scan.org = environ["SCAN_ORG"]
        if environ.get("DRY_RUN"):
            self.dry_run = environ["DRY_RUN"].strip().lower() in ("true", "1", "yes")

        if environ.get("PR_LINK_SIMILARITY"):
            self.linking.similarity_threshold = _parse_float(environ, "PR_LINK_SIMILARITY")
        if environ.get("DUPLICATE_SIMILARITY"):
            self.duplicates.similarity_threshold = _parse_float(environ, "DUPLICATE_SIMILARITY")
        if environ.get("STALENESS_THRESHOLD_DAYS"):
            self.triage.staleness_threshold_days = _parse_int(environ, "STALENESS_THRESHOLD_DAYS")

        statuses = split_list(environ.get("TARGET_STATUSES", ""))
        if statuses:
            self.board.target_statuses = statuses
        statuses = split_list(environ.get("ACTIVE_STATUSES", ""))
        if statuses:
            self.linking.active_statuses = statuses

        members = split_list(environ.get("TEAM_MEMBERS", ""))
        if environ.get("USER_MAPPINGS"):
            try:
                mappings = json.loads(environ["USER_MAPPINGS"])
            except json.JSONDecodeError as e:
                raise ConfigError(f"USER_MAPPINGS must be valid JSON: {e}")
            if not isinstance(mappings, dict):
                raise ConfigError("USER_MAPPINGS must be a JSON object")
            members.extend(login for login in mappings if login not in members)
        if members:
            self.team_members = members

        if environ.get("LLM_MODEL"):
            self.llm.model = environ["LLM_MODEL"]
        if environ.get("SIMILARITY_SCORER"):
            self.llm.scorer = environ["SIMILARITY_SCORER"].strip().lower()

    def validate(self) -> None:
        """Check value ranges that would otherwise fail deep inside a run."""
        for name, value in (
            ("linking.similarity_threshold", self.linking.similarity_threshold),
            ("duplicates.similarity_threshold", self.duplicates.similarity_threshold),
        ):
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be between 0 and 1, got {value}")
        if self.llm.scorer not in ("llm", "embedding"):
            raise ConfigError(f"llm.scorer must be 'llm' or 'embedding', got {self.llm.scorer!r}")
        if self.triage.staleness_threshold_days < 0:
            raise ConfigError("triage.staleness_threshold_days must not be negative")

    def require_board(self) -> None:
        """Raise ConfigError unless the board is fully identified and a token is set."""
        if not self.board.token:
            raise ConfigError("GITHUB_TOKEN environment variable is required")
        if not self.board.org:
            raise ConfigError("GITHUB_ORG (or board.org) is required")
        if self.board.project_number is None:
            raise ConfigError("PROJECT_NUMBER (or board.project_number) is required")

    def is_team_member(self, login: str) -> bool:
        """True when no team is configured or the login belongs to it."""
        if not self.team_members:
            return True
        return login.lower() in {member.lower() for member in self.team_members}


def split_list(value: str) -> list[str]:
    """Split a comma-separated value, dropping blanks."""
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_int(environ: Mapping[str, str], name: str) -> int:
    try:
        return int(environ[name])
    except ValueError:
        raise ConfigError(f"{name} must be a valid integer, got {environ[name]!r}")


def _parse_float(environ: Mapping[str, str], name: str) -> float:
    try:
        return float(environ[name])
    except ValueError:
        raise ConfigError(f"{name} must be a valid float, got {environ[name]!r}")


def get_repo_root() -> Path:
    """Find the repository root (directory containing .git)."""
    current = Path.cwd()
    while current != current.parent:
        if (current / ".git").exists():
            return current
        current = current.parent
    # No .git found, use current directory
    return Path.cwd()
