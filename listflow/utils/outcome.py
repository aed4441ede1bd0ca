"""
Explicit success/failure values for best-effort operations.

Most calls against the remote interface are allowed to fail without
ending the run.  Instead of scattering ``try/except`` blocks that
silently continue, call sites wrap the operation with :func:`attempt`
and inspect the returned :class:`Outcome`.  The failure is logged once,
tagged with an :class:`ErrorKind`, and the caller decides how to
continue.  :class:`~listflow.errors.PreconditionError` is never turned
into an outcome; it always propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from ..errors import PreconditionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure classes of a collection run."""

    INTERACTION = "interaction"
    EXTRACTION = "extraction"
    ENRICHMENT = "enrichment"
    FATAL = "fatal"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a fallible operation: either a value or a tagged error."""

    value: Optional[T] = None
    error: Optional[BaseException] = None
    kind: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException, kind: ErrorKind) -> "Outcome[T]":
        return cls(error=error, kind=kind)


async def attempt(
    op: Callable[[], Awaitable[T]],
    kind: ErrorKind,
    what: str,
) -> Outcome[T]:
    """Run ``op`` and capture any recoverable failure as an Outcome.

    Args:
        op: Zero-argument coroutine function to run.
        kind: Error class recorded when ``op`` fails.
        what: Short description used in the log line.

    Returns:
        ``Outcome.success(value)`` or ``Outcome.failure(exc, kind)``.
    """
    try:
        return Outcome.success(await op())
    except PreconditionError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.warning("%s failed (%s): %s", what, kind.value, exc)
        return Outcome.failure(exc, kind)
