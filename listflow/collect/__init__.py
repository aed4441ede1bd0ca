"""Collection run: convergence controller, enrichment pool and multi-profile batches."""

from .controller import (  # noqa: F401
    CollectResult,
    ConvergenceController,
    Phase,
    RunState,
    collect,
    parse_target_size,
)
from .enrich import EnrichmentPool, EnrichmentReport  # noqa: F401
from .batch import BatchResult, ProfileRun, collect_batch, profile_stats, read_followers  # noqa: F401
