"""Caller-controlled cancellation and deadlines for outbound requests."""

from collections.abc import Iterator
from contextlib import contextmanager

import anyio


class CancellationToken:
    """
    Signal shared between a caller and the requests it issues.

    ``cancel()`` aborts every in-flight request bound to the token. An optional
    ``timeout`` (seconds) turns the token into a deadline that starts counting
    when the first request is dispatched under it. Both must be used from the
    event loop that runs the requests.
    """

    def __init__(self, timeout: float | None = None) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be greater than zero.")
        self._timeout = timeout
        self._deadline: float | None = None
        self._cancelled = False
        self._scopes: set[anyio.CancelScope] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        for scope in list(self._scopes):
            scope.cancel()

    @property
    def deadline(self) -> float:
        """Absolute deadline on the anyio clock, ``inf`` when no timeout was given."""
        if self._timeout is None:
            return float("inf")
        if self._deadline is None:
            self._deadline = anyio.current_time() + self._timeout
        return self._deadline

    @contextmanager
    def bind(self) -> Iterator[anyio.CancelScope]:
        """Run the enclosed block in a cancel scope that the token can cancel."""
        with anyio.CancelScope(deadline=self.deadline) as scope:
            if self._cancelled:
                scope.cancel()
            self._scopes.add(scope)
            try:
                yield scope
            finally:
                self._scopes.discard(scope)
