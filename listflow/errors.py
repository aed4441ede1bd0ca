"""
Exception types raised by listflow.

Only :class:`PreconditionError` is allowed to escape a collection run.
Interaction, extraction and enrichment failures are absorbed by the
component that hit them and reported through
:class:`listflow.utils.outcome.Outcome` values instead.
"""

from __future__ import annotations


class ListflowError(Exception):
    """Base class for listflow errors."""


class PreconditionError(ListflowError):
    """A fatal precondition is missing (e.g. no authenticated session).

    Raised before any interaction with the remote interface begins and
    propagated unchanged to the caller of ``collect``.
    """


class ConfigError(ListflowError):
    """The YAML configuration or a source profile is malformed."""
