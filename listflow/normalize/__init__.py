"""
Normalization subsystem for listflow.

This package turns raw references into canonical identities, holds the
merged entities of a run in a dedup store, and writes the finalized
items to JSON and CSV.  The flat record format is produced by
``Entity.to_record`` in `schema.py`.
"""

from .identity import Identity, IdentityRules, derive_token, normalize  # noqa: F401
from .schema import Candidate, Entity  # noqa: F401
from .store import DedupStore  # noqa: F401
from .write_csv import write_items_csv  # noqa: F401
from .write_json import write_items_json  # noqa: F401
