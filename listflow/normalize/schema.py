"""
Entity schema.

An :class:`Entity` is one harvested record (a connection, a search
result, a feed post).  Its content fields vary per source profile, so
they live in a plain mapping instead of fixed attributes.  A field is
considered present when it holds a non-empty value; the enrichment pool
uses that completeness flag to decide what still needs backfilling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .identity import Identity

STRUCTURED = "structured"
TEXT = "text"
NETWORK = "network"
ENRICHMENT = "enrichment"


def is_present(value: Any) -> bool:
    """Return True when ``value`` counts as a populated field."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def richness(value: Any) -> float:
    """Rough measure of how much information a field value carries."""
    if not is_present(value):
        return 0.0
    if isinstance(value, str):
        return float(len(value.strip()))
    if isinstance(value, (list, tuple, set, dict)):
        return float(len(value))
    if isinstance(value, bool):
        return 1.0
    if isinstance(value, (int, float)):
        return float(value)
    return 1.0


@dataclass
class Candidate:
    """One channel's observation of an entity during a single pass."""

    identity: Identity
    fields: Dict[str, Any] = field(default_factory=dict)
    channel: str = STRUCTURED
    authoritative: bool = False


@dataclass
class Entity:
    """Merged view of every observation sharing one identity."""

    identity: Identity
    fields: Dict[str, Any] = field(default_factory=dict)
    channels: Set[str] = field(default_factory=set)

    @classmethod
    def from_candidate(cls, candidate: Candidate) -> "Entity":
        fields = {k: v for k, v in candidate.fields.items() if is_present(v)}
        return cls(identity=candidate.identity, fields=fields, channels={candidate.channel})

    def missing(self, names: Iterable[str]) -> List[str]:
        return [name for name in names if not is_present(self.fields.get(name))]

    def is_complete(self, names: Iterable[str]) -> bool:
        return not self.missing(names)

    def merge(self, candidate: Candidate) -> List[str]:
        """Fold ``candidate`` into this entity and return the changed fields.

        Empty candidate values never overwrite populated ones.  Empty
        fields are filled from any channel; populated fields are only
        replaced by an authoritative candidate carrying a richer value.
        """
        self.channels.add(candidate.channel)
        changed: List[str] = []
        for name, value in candidate.fields.items():
            if not is_present(value):
                continue
            current = self.fields.get(name)
            if not is_present(current):
                self.fields[name] = value
                changed.append(name)
            elif candidate.authoritative and richness(value) > richness(current):
                self.fields[name] = value
                changed.append(name)
        return changed

    def fill_missing(self, values: Mapping[str, Any]) -> List[str]:
        """Backfill absent fields only; present fields are left untouched."""
        filled: List[str] = []
        for name, value in values.items():
            if is_present(value) and not is_present(self.fields.get(name)):
                self.fields[name] = value
                filled.append(name)
        if filled:
            self.channels.add(ENRICHMENT)
        return filled

    def to_record(
        self,
        reference_field: str = "profileUrl",
        token_field: Optional[str] = "username",
    ) -> Dict[str, Any]:
        """Flatten into the output record consumed by the exporters."""
        record: Dict[str, Any] = dict(self.fields)
        if token_field:
            record[token_field] = self.identity.token
        record[reference_field] = self.identity.key if self.identity.is_reference else None
        return record
