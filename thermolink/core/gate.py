"""Capability gate: answers whether a privileged radio operation is authorized."""

from __future__ import annotations

from collections.abc import Iterable
from threading import RLock
from typing import Protocol

from thermolink.core.errors import PermissionDeniedError
from thermolink.core.model import Operation


class CapabilityGate(Protocol):
    def authorized(self, operation: Operation) -> bool:
        """Return True when `operation` may be performed right now. Must not have side effects."""


class PolicyGate:
    """Gate backed by a mutable set of allowed operations.

    Grants and revocations take effect on the next query, so a session that
    re-checks before every privileged call observes them between stages.
    """

    def __init__(self, allowed: Iterable[Operation] = tuple(Operation)) -> None:
        self._lock = RLock()
        self._allowed = set(allowed)

    def authorized(self, operation: Operation) -> bool:
        with self._lock:
            return operation in self._allowed

    def grant(self, operation: Operation) -> None:
        with self._lock:
            self._allowed.add(operation)

    def revoke(self, operation: Operation) -> None:
        with self._lock:
            self._allowed.discard(operation)


def check(gate: CapabilityGate, operation: Operation) -> PermissionDeniedError | None:
    """Return the denial error for `operation`, or None when it is authorized."""
    if gate.authorized(operation):
        return None
    return PermissionDeniedError(operation.value)
