"""Data layer: input snapshots and the external narrative service."""

from scenario_intel.data.cache import NarrativeCache, get_narrative_cache
from scenario_intel.data.narrative_client import (
    NarrativeServiceClient,
    NarrativeServiceError,
    extract_text,
    get_default_client,
)
from scenario_intel.data.snapshots import (
    MetricSnapshot,
    SnapshotParseError,
    SystemAnalysisSnapshot,
    parse_analysis_snapshot,
    parse_metric_snapshot,
)

__all__ = [
    # Cache
    "NarrativeCache",
    "get_narrative_cache",
    # Narrative service
    "NarrativeServiceClient",
    "NarrativeServiceError",
    "extract_text",
    "get_default_client",
    # Snapshots
    "MetricSnapshot",
    "SnapshotParseError",
    "SystemAnalysisSnapshot",
    "parse_analysis_snapshot",
    "parse_metric_snapshot",
]
