"""
Keeps a live view of in-flight transfers and a short history of finished ones.
"""

from collections import OrderedDict, deque
from dataclasses import dataclass, replace
from pathlib import Path

from arctic_helper.models.events import (
    BATCH_TERMINAL_EVENTS,
    Cancelled,
    Failed,
    Finished,
    Progress,
    Started,
    TransferEvent,
    TransferKind,
)

MAX_COMPLETED = 30


@dataclass(frozen=True)
class Transfer:
    key: str
    kind: TransferKind
    name: str
    phase: str
    received: int = 0
    size: int | None = None
    folder: Path | None = None
    message: str = ""


class TransferTracker:
    """
    An event sink that maintains the active transfer set.

    Transfers are keyed by kind, batch position and file name. Terminal events
    remove them from ``active``; finished ones are also recorded in
    ``completed`` (newest first, bounded, de-duplicated by name and folder).
    Failed and cancelled transfers leave no history.
    """

    def __init__(self, max_completed: int = MAX_COMPLETED):
        self.active: OrderedDict[str, Transfer] = OrderedDict()
        self.completed: deque[Transfer] = deque(maxlen=max_completed)
        self.batch_phase: str | None = None

    def on_event(self, event: TransferEvent) -> None:
        if isinstance(event, BATCH_TERMINAL_EVENTS):
            self.batch_phase = event.phase
            self.active.clear()
            return

        key = event.key
        if isinstance(event, Started):
            self.batch_phase = "running"
            self.active[key] = Transfer(
                key=key,
                kind=event.kind,
                name=event.artifact,
                phase=event.phase,
                size=event.size,
                folder=event.folder,
            )
        elif isinstance(event, Progress):
            current = self.active.get(key)
            if current is not None:
                self.active[key] = replace(
                    current,
                    phase=event.phase,
                    received=event.received,
                    size=event.size if event.size is not None else current.size,
                )
        elif isinstance(event, (Finished, Failed, Cancelled)):
            current = self.active.pop(key, None)
            if current is None:
                current = Transfer(key=key, kind=event.kind, name=event.artifact, phase="")
            if isinstance(event, Finished):
                self._record(
                    replace(
                        current,
                        phase=event.phase,
                        folder=event.folder,
                        message="Already present" if event.skipped else "",
                    )
                )

    def _record(self, transfer: Transfer) -> None:
        for existing in list(self.completed):
            if existing.name == transfer.name and existing.folder == transfer.folder:
                self.completed.remove(existing)
        self.completed.appendleft(transfer)

    @property
    def active_count(self) -> int:
        return len(self.active)
