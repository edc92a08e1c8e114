"""
Progress events and cancellation.

The engine reports milestones to an observer instead of driving a UI
directly, and checks a CancellationToken between collection and read steps.
"""

import sys
import threading
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from .errors import FlattenCancelled


# Milestone kinds
COLLECTED = "collected"
SCORED = "scored"
ESTIMATED = "estimated"
FILES_READ = "files_read"
CHUNK_SEALED = "chunk_sealed"
CHUNK_WRITTEN = "chunk_written"
DONE = "done"


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress notification."""
    kind: str
    message: str
    processed: int = 0
    total: int = 0


@runtime_checkable
class ProgressObserver(Protocol):
    """Receives ProgressEvents. Must not block."""

    def on_event(self, event: ProgressEvent) -> None:
        ...


class StderrProgress:
    """Default observer: one line per milestone on stderr."""

    def __init__(self, output=None):
        self.output = output

    def on_event(self, event: ProgressEvent) -> None:
        output = self.output or sys.stderr
        if event.total:
            print(f"[{event.kind}] {event.message} ({event.processed}/{event.total})", file=output)
        else:
            print(f"[{event.kind}] {event.message}", file=output)


def notify(observer: Optional[ProgressObserver], kind: str, message: str,
           processed: int = 0, total: int = 0) -> None:
    """Deliver an event, never letting an observer failure stop the run."""
    if observer is None:
        return
    try:
        observer.on_event(ProgressEvent(kind, message, processed, total))
    except Exception as e:
        print(f"Warning: progress observer failed on '{kind}': {e}", file=sys.stderr)


class CancellationToken:
    """Thread-safe cancellation flag.

    Usage:
        token = CancellationToken()
        ...
        token.cancel()            # from a signal handler or another thread
        token.raise_if_cancelled()  # at a safe point inside the engine
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise FlattenCancelled("Flattening was cancelled.")


def check_cancelled(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()
