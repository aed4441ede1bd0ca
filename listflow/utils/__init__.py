"""Small shared helpers: retry wrapper and explicit outcomes."""

from .outcome import ErrorKind, Outcome, attempt  # noqa: F401
from .retry import with_retry  # noqa: F401
