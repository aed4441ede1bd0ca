"""
listflow: exhaustive harvesting of lazily-rendered lists.

Interfaces such as a connections page or a people search render a
long list of entities a few at a time, only in response to scrolling or
paging.  listflow drives a real browser through such a list until the
set of distinct entities stops growing, and returns each one exactly
once.

The high-level flow is:

1. **driver** – Asynchronous page automation capability and its Chrome
   implementation (stealth settings, performance-log network capture,
   saved session cookies).
2. **extract** – Three independent channels run on every pass: a
   structured selector channel, free-text reference mining, and mining
   of captured pagination responses.
3. **normalize** – Canonical identities, the dedup store with its
   never-regress merge policy, and the JSON/CSV writers.
4. **collect** – The convergence controller that alternates
   interaction and extraction until the list converges or the budget
   runs out, and the enrichment pool that backfills incomplete entries
   from detail pages.  Parameterized sources can be run for several
   profiles in one session.
5. **cli** – Command line entry point wiring the above together.

Everything specific to one list interface (selectors, URL shapes,
endpoints) is data in a :class:`~listflow.sources.SourceProfile`.
"""

from .collect.batch import BatchResult, collect_batch  # noqa: F401
from .collect.controller import CollectResult, collect  # noqa: F401
from .config import CollectOptions  # noqa: F401
from .errors import ConfigError, ListflowError, PreconditionError  # noqa: F401

__version__ = "0.1.0"
