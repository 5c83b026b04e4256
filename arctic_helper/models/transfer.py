"""
Resolved download targets and batch results.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .catalog import LoraDefinition
from .events import FailureReason


@dataclass(frozen=True)
class ResolvedArtifact:
    """A remote file paired with the local path it must end up at."""

    name: str
    url: str
    destination: Path
    size: int | None = None
    category: str = ""
    sha256: str | None = None
    # Extra request headers, e.g. bearer auth. Kept out of repr so tokens
    # never end up in logs.
    headers: dict[str, str] = field(default_factory=dict, repr=False, compare=False)

    @property
    def folder(self) -> Path:
        return self.destination.parent

    @property
    def temp_path(self) -> Path:
        return self.destination.with_name(self.destination.name + ".part")


@dataclass(frozen=True)
class ResolvedLora:
    lora: LoraDefinition
    destination: Path
    url: str

    @property
    def name(self) -> str:
        return self.destination.name


class OutcomeStatus(str, Enum):
    DOWNLOADED = "downloaded"
    SKIPPED_EXISTING = "skipped_existing"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BatchStatus(str, Enum):
    FINISHED = "finished"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TransferOutcome:
    artifact: ResolvedArtifact
    status: OutcomeStatus
    bytes_written: int = 0
    message: str = ""
    reason: FailureReason | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in (OutcomeStatus.DOWNLOADED, OutcomeStatus.SKIPPED_EXISTING)


@dataclass(frozen=True)
class BatchResult:
    status: BatchStatus
    outcomes: list[TransferOutcome]

    @property
    def succeeded(self) -> list[TransferOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[TransferOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.FAILED]
