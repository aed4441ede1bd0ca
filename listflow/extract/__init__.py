"""
Multi-channel extraction.

``channels`` holds the structured, free-text and network producers and
the :class:`Extractor` that runs them together; ``fields`` implements
the ordered-fallback selector strategy and ``patterns`` the regex
reference miner shared by the text and network channels.
"""

from .channels import Extractor, NetworkChannel, StructuredChannel, TextChannel  # noqa: F401
from .fields import extract_field, parse_count, split_selector  # noqa: F401
from .patterns import ReferenceMiner  # noqa: F401
