"""Centralized environment-based settings for Rollout Runner.

Reads configuration from environment variables with sensible defaults.
Command-line flags override individual fields via dataclasses.replace.

Usage:
    from rollout_runner.config.settings import get_settings
    settings = get_settings()
    project = settings.validate()
"""

import os
import re
from dataclasses import dataclass

from rollout_runner.exceptions import ConfigurationError

_PLAN_RE = re.compile(r"^(?P<project>projects/[^/]+)/plans/[^/]+$")

DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CANCEL_TIMEOUT_SECONDS = 10.0

_STRIPPED_FIELDS = ("url", "token", "plan", "target_stage", "title")


@dataclass(frozen=True)
class RolloutSettings:
    """Immutable run settings loaded from environment."""

    # Remote API
    url: str = ""
    token: str = ""
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    check_version: bool = True

    # Rollout
    plan: str = ""
    target_stage: str = ""  # empty = advance to completion
    title: str = ""

    # Polling
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    # Interruption
    cancel_timeout_seconds: float = DEFAULT_CANCEL_TIMEOUT_SECONDS

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self) -> None:
        # Stored stripped so the validated value is the value sent.
        for name in _STRIPPED_FIELDS:
            object.__setattr__(self, name, getattr(self, name).strip())

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")

    def validate(self) -> str:
        """Check required inputs and return the project parsed from the plan.

        Raises:
            ConfigurationError: If any required field is empty or the plan
                reference cannot be parsed.
        """
        missing = [
            name
            for name, value in (("url", self.url), ("token", self.token), ("plan", self.plan))
            if not value
        ]
        if missing:
            raise ConfigurationError(f"missing required input: {', '.join(missing)}")
        if self.poll_interval_seconds < 0:
            raise ConfigurationError(
                f"poll interval must be non-negative, got {self.poll_interval_seconds}"
            )
        return project_from_plan(self.plan)


def project_from_plan(plan: str) -> str:
    """Extract ``projects/{project}`` from ``projects/{project}/plans/{plan}``."""
    m = _PLAN_RE.match(plan)
    if not m:
        raise ConfigurationError(f"failed to extract project from plan {plan}")
    return m.group("project")


def get_settings() -> RolloutSettings:
    """Load settings from environment variables.

    Environment variables:
        ROLLOUT_URL: Base URL of the remote API (required)
        ROLLOUT_TOKEN: Bearer credential (required)
        ROLLOUT_PLAN: Plan name, projects/{project}/plans/{plan} (required)
        ROLLOUT_TARGET_STAGE: Environment of the stage to stop after (default: run all)
        ROLLOUT_TITLE: Optional rollout title
        ROLLOUT_POLL_INTERVAL_SECONDS: Delay between polls (default: 5)
        ROLLOUT_CANCEL_TIMEOUT: Deadline for canceling task runs on interrupt (default: 10)
        ROLLOUT_TIMEOUT: HTTP timeout in seconds (default: 30)
        ROLLOUT_CHECK_VERSION: Run the server version preflight (default: true)
        ROLLOUT_LOG_LEVEL: Logging level (default: INFO)
        ROLLOUT_LOG_JSON: Render logs as JSON (default: false)
    """
    def _bool(key: str, default: bool = False) -> bool:
        val = os.environ.get(key, "").lower()
        if val in ("1", "true", "yes"):
            return True
        if val in ("0", "false", "no"):
            return False
        return default

    def _float(key: str, default: float) -> float:
        raw = os.environ.get(key, "")
        if not raw:
            return default
        try:
            return float(raw)
        except ValueError:
            raise ConfigurationError(f"{key} must be a number, got {raw!r}") from None

    return RolloutSettings(
        url=os.environ.get("ROLLOUT_URL", ""),
        token=os.environ.get("ROLLOUT_TOKEN", ""),
        timeout=_float("ROLLOUT_TIMEOUT", DEFAULT_TIMEOUT_SECONDS),
        check_version=_bool("ROLLOUT_CHECK_VERSION", True),
        plan=os.environ.get("ROLLOUT_PLAN", ""),
        target_stage=os.environ.get("ROLLOUT_TARGET_STAGE", ""),
        title=os.environ.get("ROLLOUT_TITLE", ""),
        poll_interval_seconds=_float(
            "ROLLOUT_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS
        ),
        cancel_timeout_seconds=_float("ROLLOUT_CANCEL_TIMEOUT", DEFAULT_CANCEL_TIMEOUT_SECONDS),
        log_level=os.environ.get("ROLLOUT_LOG_LEVEL", "INFO").upper(),
        log_json=_bool("ROLLOUT_LOG_JSON", False),
    )
