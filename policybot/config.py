"""Runtime settings, read once from the environment at startup."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT = 30.0
DEFAULT_BACKOFF_BASE = 1.0

# Checked in order; the first non-empty value wins.
TOKEN_VARIABLES = ("POLICYBOT_GITHUB_TOKEN", "TTV_GITHUB_PAT")


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration handed explicitly to every component."""

    github_token: str = ""
    org: str = ""
    api_url: str = DEFAULT_API_URL
    policies_path: str = ""
    timeout: float = DEFAULT_TIMEOUT
    backoff_base: float = DEFAULT_BACKOFF_BASE
    concurrency: int = 1
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        token = next((env[name] for name in TOKEN_VARIABLES if env.get(name)), "")
        return cls(
            github_token=token,
            org=env.get("POLICYBOT_ORG", ""),
            api_url=env.get("POLICYBOT_API_URL", DEFAULT_API_URL),
            policies_path=env.get("POLICYBOT_POLICIES", ""),
            timeout=_number(env, "POLICYBOT_TIMEOUT", DEFAULT_TIMEOUT),
            backoff_base=_number(env, "POLICYBOT_BACKOFF_BASE", DEFAULT_BACKOFF_BASE),
            concurrency=int(_number(env, "POLICYBOT_CONCURRENCY", 1)),
            log_level=env.get("POLICYBOT_LOG_LEVEL", "INFO"),
        )

    def with_overrides(self, **overrides) -> Settings:
        """Return a copy with every non-``None`` override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self, require_token: bool = True) -> list[str]:
        """Return a list of problems. Empty list means the settings are usable."""
        issues = []
        if require_token and not self.github_token:
            issues.append(f"a GitHub token is required (set {TOKEN_VARIABLES[0]})")
        if not self.org:
            issues.append("an organization is required (set POLICYBOT_ORG)")
        if self.timeout <= 0:
            issues.append("timeout must be positive")
        if self.backoff_base < 0:
            issues.append("backoff base must not be negative")
        if self.concurrency < 1:
            issues.append("concurrency must be at least 1")
        return issues


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
