"""Policy catalog — the declared set of workflows every matching repository must carry."""

from policybot.policies.catalog import load_catalog, parse_catalog, validate_catalog

__all__ = ["load_catalog", "parse_catalog", "validate_catalog"]
