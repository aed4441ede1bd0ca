"""
Dedup store.

Maps canonical identity keys to the richest :class:`Entity` seen so
far.  Insertion order is preserved so the finalized output lists
entities in first-seen order.  The store is owned by one collection
run and mutated only by its controller coroutine.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Tuple, Union

from .identity import Identity
from .schema import Candidate, Entity

logger = logging.getLogger(__name__)


class DedupStore:
    """Identity-keyed entity store with a never-regress merge policy.

    Args:
        capacity: Optional hard cap on the number of distinct identities.
            Once reached, new identities are refused while merges into
            known entities still happen.
    """

    def __init__(self, capacity: Optional[int] = None) -> None:
        self.capacity = capacity
        self._entities: Dict[str, Entity] = {}
        self._frozen = False
        self.refused = 0

    def __len__(self) -> int:
        return len(self._entities)

    @staticmethod
    def _key(identity: Union[Identity, str]) -> str:
        return identity.key if isinstance(identity, Identity) else identity

    @property
    def full(self) -> bool:
        return self.capacity is not None and len(self._entities) >= self.capacity

    def get(self, identity: Union[Identity, str]) -> Optional[Entity]:
        return self._entities.get(self._key(identity))

    def add(self, candidate: Candidate) -> bool:
        """Insert or merge ``candidate``; return True if the identity is new."""
        if self._frozen:
            raise RuntimeError("DedupStore is frozen; the run has been finalized")
        key = candidate.identity.key
        existing = self._entities.get(key)
        if existing is not None:
            existing.merge(candidate)
            return False
        if self.full:
            self.refused += 1
            return False
        self._entities[key] = Entity.from_candidate(candidate)
        return True

    def fold(self, candidates: Iterable[Candidate]) -> int:
        """Add every candidate and return how many identities were new."""
        added = 0
        for candidate in candidates:
            if self.add(candidate):
                added += 1
        return added

    def freeze(self) -> Tuple[Entity, ...]:
        """Finalize the store and return entities in first-seen order."""
        self._frozen = True
        if self.refused:
            logger.info("Store cap reached; %d new identities were not kept", self.refused)
        return tuple(self._entities.values())
