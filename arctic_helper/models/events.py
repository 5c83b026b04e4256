"""
Transfer events and the sink contract used to observe downloads.

Events form a closed set of frozen dataclasses. Producers call
``EventSink.on_event`` synchronously from the event loop thread and never wait
on the consumer, so sinks must return quickly.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import ClassVar, Protocol, Union, runtime_checkable

log = logging.getLogger(__name__)


class TransferKind(str, Enum):
    MODEL = "model"
    LORA = "lora"
    UPDATE = "update"


class FailureReason(str, Enum):
    NETWORK = "network"
    IO = "io"
    UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True)
class _ArtifactEvent:
    kind: TransferKind
    index: int  # 1-based position in the batch
    total: int
    artifact: str

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.index}:{self.artifact}"


@dataclass(frozen=True)
class Started(_ArtifactEvent):
    folder: Path
    size: int | None = None

    phase: ClassVar[str] = "started"


@dataclass(frozen=True)
class Progress(_ArtifactEvent):
    received: int
    size: int | None = None

    phase: ClassVar[str] = "progress"


@dataclass(frozen=True)
class Finished(_ArtifactEvent):
    folder: Path
    skipped: bool = False

    phase: ClassVar[str] = "finished"


@dataclass(frozen=True)
class Failed(_ArtifactEvent):
    message: str
    reason: FailureReason = FailureReason.NETWORK

    phase: ClassVar[str] = "failed"


@dataclass(frozen=True)
class Cancelled(_ArtifactEvent):
    phase: ClassVar[str] = "cancelled"


@dataclass(frozen=True)
class BatchFinished:
    kind: TransferKind
    total: int
    succeeded: int
    failed: int

    phase: ClassVar[str] = "batch_finished"


@dataclass(frozen=True)
class BatchFailed:
    kind: TransferKind
    total: int
    message: str

    phase: ClassVar[str] = "batch_failed"


@dataclass(frozen=True)
class BatchCancelled:
    kind: TransferKind
    total: int

    phase: ClassVar[str] = "batch_cancelled"


TransferEvent = Union[
    Started,
    Progress,
    Finished,
    Failed,
    Cancelled,
    BatchFinished,
    BatchFailed,
    BatchCancelled,
]

BATCH_TERMINAL_EVENTS = (BatchFinished, BatchFailed, BatchCancelled)


@runtime_checkable
class EventSink(Protocol):
    def on_event(self, event: TransferEvent) -> None: ...


class NullSink:
    """Discards every event."""

    def on_event(self, event: TransferEvent) -> None:
        return None


class CallbackSink:
    """Adapts a plain callable to the sink contract."""

    def __init__(self, callback: Callable[[TransferEvent], None]):
        self._callback = callback

    def on_event(self, event: TransferEvent) -> None:
        self._callback(event)


class QueueSink:
    """
    Pushes events onto an unbounded ``asyncio.Queue``.

    Useful when a consumer wants to ``await`` events instead of receiving
    callbacks, e.g. a UI bridge or a test.
    """

    def __init__(self, queue: asyncio.Queue | None = None):
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

    def on_event(self, event: TransferEvent) -> None:
        self.queue.put_nowait(event)

    def drain(self) -> list[TransferEvent]:
        """Returns every event queued so far without waiting."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class FanOutSink:
    """Delivers each event to several sinks in order."""

    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks = list(sinks)

    def on_event(self, event: TransferEvent) -> None:
        for sink in self.sinks:
            deliver(sink, event)


def deliver(sink: EventSink, event: TransferEvent) -> None:
    """Hands an event to a sink; a failing sink never breaks the producer."""
    try:
        sink.on_event(event)
    except Exception as e:
        log.warning(
            f"Event sink {type(sink).__name__} failed on '{event.phase}' event: {e}"
        )
        log.debug("Sink traceback:", exc_info=True)
