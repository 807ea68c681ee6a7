"""Error kinds raised by the object store boundary and the reconciler.

Only ``Conflict`` is retried (inside a pass, see ``asr.retry``). Everything
else ends the pass and is surfaced to whoever invoked it.
"""
from __future__ import annotations


class ReconcileError(Exception):
    def __init__(self, message: str, kind: str | None = None, namespace: str | None = None, name: str | None = None):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        super().__init__(message)

    @property
    def key(self) -> str | None:
        if self.namespace is None or self.name is None:
            return None
        return f"{self.namespace}/{self.name}"


class NotFound(ReconcileError):
    pass


class AlreadyExists(ReconcileError):
    pass


class Conflict(ReconcileError):
    """The stored version advanced since the object was last read."""


class MalformedSnapshot(ReconcileError):
    """The last-applied snapshot annotation is missing or does not decode."""


class InvalidSpec(ReconcileError):
    pass


class StoreError(ReconcileError):
    """Any other failure talking to the object store (transport, 5xx, forbidden...)."""
