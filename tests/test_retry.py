"""Tests for the retry wrapper and explicit outcomes."""

from __future__ import annotations

import asyncio
import unittest
from unittest import mock

from listflow.errors import PreconditionError
from listflow.utils.outcome import ErrorKind, attempt
from listflow.utils.retry import with_retry


class Flaky:
    def __init__(self, failures, error=RuntimeError):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return "done"


class TestWithRetry(unittest.TestCase):
    """Retry semantics: 1 + max_attempts tries, linear backoff, last error re-raised."""

    def setUp(self) -> None:
        patcher = mock.patch("listflow.utils.retry.asyncio.sleep", new=mock.AsyncMock())
        self.sleep = patcher.start()
        self.addCleanup(patcher.stop)

    def test_succeeds_after_failures(self) -> None:
        op = Flaky(failures=2)
        result = asyncio.run(with_retry(op, max_attempts=3, base_delay=1.0))
        self.assertEqual(result, "done")
        self.assertEqual(op.calls, 3)
        self.assertEqual([c.args[0] for c in self.sleep.await_args_list], [1.0, 2.0])

    def test_reraises_last_error(self) -> None:
        op = Flaky(failures=10)
        with self.assertRaises(RuntimeError) as ctx:
            asyncio.run(with_retry(op, max_attempts=2, base_delay=0.5))
        self.assertEqual(str(ctx.exception), "failure 3")
        self.assertEqual(op.calls, 3)
        self.assertEqual([c.args[0] for c in self.sleep.await_args_list], [0.5, 1.0])

    def test_zero_retries_raises_first_error(self) -> None:
        op = Flaky(failures=1)
        with self.assertRaises(RuntimeError) as ctx:
            asyncio.run(with_retry(op, max_attempts=0))
        self.assertEqual(str(ctx.exception), "failure 1")
        self.assertEqual(op.calls, 1)
        self.sleep.assert_not_awaited()

    def test_precondition_is_not_retried(self) -> None:
        op = Flaky(failures=10, error=PreconditionError)
        with self.assertRaises(PreconditionError):
            asyncio.run(with_retry(op, max_attempts=3))
        self.assertEqual(op.calls, 1)
        self.sleep.assert_not_awaited()


class TestAttempt(unittest.TestCase):
    def test_success(self) -> None:
        outcome = asyncio.run(attempt(Flaky(0), ErrorKind.INTERACTION, "op"))
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.value, "done")

    def test_failure_is_tagged(self) -> None:
        with self.assertLogs("listflow.utils.outcome", level="WARNING"):
            outcome = asyncio.run(attempt(Flaky(1), ErrorKind.EXTRACTION, "op"))
        self.assertFalse(outcome.ok)
        self.assertIs(outcome.kind, ErrorKind.EXTRACTION)
        self.assertEqual(outcome.unwrap_or([]), [])

    def test_precondition_propagates(self) -> None:
        with self.assertRaises(PreconditionError):
            asyncio.run(attempt(Flaky(1, PreconditionError), ErrorKind.FATAL, "op"))


if __name__ == "__main__":
    unittest.main()
