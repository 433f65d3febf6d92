"""Scenario Intelligence MCP Server."""

import os


def get_server_version() -> str:
    """Get version with fallback for dev mode."""
    if version := os.environ.get("SERVER_VERSION"):
        return version
    try:
        from importlib.metadata import version as pkg_version

        return pkg_version("scenario-intel")
    except Exception:
        return "dev"


SERVER_VERSION = get_server_version()
# Bump when output schema changes materially (new fields, renamed fields, structure changes)
# v1: Initial classification record
# v2: Added quantified findings and narrative blocks with citations
# v3: Added position_brief (strengths/vulnerabilities/priorities) and snapshot_hash
SCHEMA_VERSION = "3"
