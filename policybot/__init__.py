"""policybot — keep a fleet of repositories aligned with declared workflow policies."""

__version__ = "0.1.0"
