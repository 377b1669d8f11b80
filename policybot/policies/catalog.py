"""Policy catalog loading and validation.

A catalog is an ordered list of workflow policies. It is read once before
the engine starts, and a malformed catalog fails startup rather than a run.

Accepted layouts (JSON or YAML)::

    [{"name": "dockerfile", "match_file": "**/Dockerfile*", "source": "https://..."}]

    policies:
      - name: dockerfile
        match_pattern: "**/Dockerfile*"
        source_url: https://...
"""

from __future__ import annotations

import re
from pathlib import Path
from urllib.parse import urlparse

import yaml

from policybot.errors import CatalogError, PatternError
from policybot.models import Policy
from policybot.utils.globbing import validate_pattern

# Policy names end up in file paths and branch names.
NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

PATTERN_KEYS = ("match_pattern", "match_file")
SOURCE_KEYS = ("source_url", "source")


def load_catalog(path: str | Path) -> list[Policy]:
    """Load and validate a policy catalog from a JSON or YAML file."""
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            # safe_load parses JSON catalogs too.
            data = yaml.safe_load(f)
    except OSError as e:
        raise CatalogError([f"cannot read file: {e}"], source=str(path)) from e
    except yaml.YAMLError as e:
        raise CatalogError([f"cannot parse file: {e}"], source=str(path)) from e

    return parse_catalog(data, source=str(path))


def parse_catalog(data, source: str = "") -> list[Policy]:
    """Build policies from already-parsed catalog data."""
    records = data.get("policies") if isinstance(data, dict) else data
    issues = validate_catalog(records)
    if issues:
        raise CatalogError(issues, source=source)

    return [
        Policy(
            name=record["name"],
            match_pattern=_first(record, PATTERN_KEYS),
            source_url=_first(record, SOURCE_KEYS),
        )
        for record in records
    ]


def validate_catalog(records) -> list[str]:
    """Validate raw catalog records.

    Returns:
        List of problems, one per offending field. Empty list means valid.
    """
    if not isinstance(records, list):
        return [f"expected a list of policies, got {type(records).__name__}"]

    issues: list[str] = []
    seen: set[str] = set()

    for index, record in enumerate(records):
        where = f"policies[{index}]"
        if not isinstance(record, dict):
            issues.append(f"{where}: expected a mapping, got {type(record).__name__}")
            continue

        name = record.get("name")
        if not isinstance(name, str) or not name:
            issues.append(f"{where}: 'name' is required")
        else:
            where = f"policies[{index}] ({name})"
            if not NAME_PATTERN.match(name):
                issues.append(f"{where}: name may only contain letters, digits, '.', '_' and '-'")
            if name in seen:
                issues.append(f"{where}: duplicate policy name")
            seen.add(name)

        pattern = _first(record, PATTERN_KEYS)
        if not isinstance(pattern, str) or not pattern:
            issues.append(f"{where}: one of {', '.join(PATTERN_KEYS)} is required")
        else:
            try:
                validate_pattern(pattern)
            except PatternError as e:
                issues.append(f"{where}: {e}")

        url = _first(record, SOURCE_KEYS)
        if not isinstance(url, str) or not url:
            issues.append(f"{where}: one of {', '.join(SOURCE_KEYS)} is required")
        elif urlparse(url).scheme not in ("http", "https") or not urlparse(url).netloc:
            issues.append(f"{where}: source must be an http(s) URL, got {url!r}")

    return issues


def _first(record: dict, keys: tuple[str, ...]):
    for key in keys:
        if key in record:
            return record[key]
    return None
