"""Drift detection and remediation.

This package provides:
- Content: fetching canonical policy content and wrapping it with the managed-file markers
- Drift detection: deciding per repository which policies are missing or stale
- Remediation: the branch / file / pull request protocol that fixes a deviation
- Orchestration: walking the fleet with per-repository and per-deviation isolation
"""
