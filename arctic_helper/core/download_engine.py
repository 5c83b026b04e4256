"""
Orchestrates batches of downloads with a small worker pool.

A batch is an ordered list of resolved artifacts. Workers pull from one queue,
so ``Started`` events follow the list order while completions may interleave.
Every per-file problem becomes a ``Failed`` event; only misuse of the engine
itself (an empty batch, a second concurrent batch) raises.
"""

import asyncio
import logging
import os
import threading
import time
from collections.abc import Iterable
from pathlib import Path

from arctic_helper.exceptions import (
    DownloadCancelled,
    EngineBusy,
    FileIntegrityError,
    IoError,
    NetworkError,
    NothingToDownload,
    Unauthorized,
)
from arctic_helper.media.downloader import Downloader
from arctic_helper.media.integrity import verify_sha256
from arctic_helper.models.events import (
    BatchCancelled,
    BatchFailed,
    BatchFinished,
    Cancelled,
    EventSink,
    Failed,
    FailureReason,
    Finished,
    NullSink,
    Progress,
    Started,
    TransferEvent,
    TransferKind,
    deliver,
)
from arctic_helper.models.stats import DownloadStats
from arctic_helper.models.transfer import (
    BatchResult,
    BatchStatus,
    OutcomeStatus,
    ResolvedArtifact,
    TransferOutcome,
)

log = logging.getLogger(__name__)

MIN_WORKERS = 1
MAX_WORKERS = 4


def _remove_if_exists(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning(f"Could not remove partial file '{path}': {e}")


class BatchHandle:
    """Returned by ``enqueue_batch``; lets callers cancel or await one batch."""

    def __init__(self, engine: "DownloadEngine", kind: TransferKind, total: int):
        self.kind = kind
        self.total = total
        self._engine = engine
        self._cancel_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> bool:
        """Requests cancellation. Returns False if the batch already ended."""
        return self._engine._cancel_handle(self)

    async def wait(self) -> BatchResult:
        """Waits for the batch to end and returns its per-file outcomes."""
        return await asyncio.shield(self._task)


class DownloadEngine:
    """
    Runs one batch at a time with ``max_workers`` concurrent transfers.

    Each file is streamed to ``<name>.part`` next to its destination and renamed
    into place once complete, so the final path only ever holds whole files.
    Existing destinations are skipped without touching the network.
    """

    def __init__(
        self,
        sink: EventSink | None = None,
        max_workers: int = 2,
        downloader: Downloader | None = None,
        progress_interval: float = 0.25,
    ):
        """
        Args:
            sink: Receives every transfer event.
            max_workers: Concurrent transfers per batch, clamped to 1-4.
            downloader: The streaming primitive; one is created if omitted.
            progress_interval: Minimum seconds between two Progress events for
                the same file.
        """
        self.max_workers = max(MIN_WORKERS, min(MAX_WORKERS, max_workers))
        self.sink: EventSink = sink or NullSink()
        self.downloader = downloader or Downloader(max_connections=self.max_workers)
        self.progress_interval = progress_interval
        self.stats = DownloadStats()

        # Guards the active batch; cancel() may be called from another thread.
        self._lock = threading.Lock()
        self._active: BatchHandle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    async def __aenter__(self) -> "DownloadEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def is_busy(self) -> bool:
        with self._lock:
            return self._active is not None

    def enqueue_batch(
        self, kind: TransferKind | str, items: Iterable[ResolvedArtifact]
    ) -> BatchHandle:
        """
        Schedules a batch on the running event loop and returns immediately.

        Raises:
            NothingToDownload: If ``items`` is empty.
            EngineBusy: If another batch is still active.
        """
        kind = TransferKind(kind)
        items = list(items)
        if not items:
            raise NothingToDownload("There is nothing to download for this selection.")

        loop = asyncio.get_running_loop()
        with self._lock:
            if self._active is not None:
                raise EngineBusy()
            handle = BatchHandle(self, kind, len(items))
            self._active = handle
            self._loop = loop

        log.info(f"Starting {kind.value} batch of {len(items)} file(s).")
        handle._task = loop.create_task(self._run_batch(handle, items))
        return handle

    def cancel(self) -> bool:
        """Cancels the active batch, if any. Safe to call from any thread."""
        with self._lock:
            handle = self._active
        if handle is None:
            return False
        return self._cancel_handle(handle)

    async def close(self) -> None:
        """Cancels any running batch, waits for it, and closes the connection pool."""
        with self._lock:
            handle = self._active
        if handle is not None:
            self._cancel_handle(handle)
            if handle._task is not None:
                await asyncio.gather(handle._task, return_exceptions=True)
        await self.downloader.close()

    def _cancel_handle(self, handle: BatchHandle) -> bool:
        with self._lock:
            if handle is not self._active:
                return False
            loop = self._loop

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            handle._cancel_event.set()
        else:
            loop.call_soon_threadsafe(handle._cancel_event.set)
        log.info(f"Cancelling {handle.kind.value} batch...")
        return True

    def _emit(self, event: TransferEvent) -> None:
        deliver(self.sink, event)

    async def _run_batch(
        self, handle: BatchHandle, items: list[ResolvedArtifact]
    ) -> BatchResult:
        queue: asyncio.Queue = asyncio.Queue()
        for index, item in enumerate(items, start=1):
            queue.put_nowait((index, item))
        outcomes: list[TransferOutcome | None] = [None] * len(items)

        workers = [
            asyncio.create_task(self._worker(handle, queue, outcomes))
            for _ in range(min(self.max_workers, len(items)))
        ]
        try:
            try:
                await asyncio.gather(*workers)
            except BaseException:
                for worker in workers:
                    worker.cancel()
                await asyncio.gather(*workers, return_exceptions=True)
                raise
            result, terminal = self._summarize(handle, items, outcomes)
        finally:
            with self._lock:
                if self._active is handle:
                    self._active = None

        self.stats.batches_run += 1
        # Emitted after the active flag is cleared so a sink may chain a new batch.
        self._emit(terminal)
        return result

    async def _worker(
        self,
        handle: BatchHandle,
        queue: asyncio.Queue,
        outcomes: list[TransferOutcome | None],
    ) -> None:
        while not handle._cancel_event.is_set():
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                outcomes[index - 1] = await self._transfer(handle, index, item)
            except Exception as e:
                log.debug(f"Unexpected error for '{item.name}'.", exc_info=True)
                await asyncio.to_thread(_remove_if_exists, item.temp_path)
                error = IoError(str(e) or type(e).__name__)
                outcomes[index - 1] = self._fail(
                    handle, index, item, error, FailureReason.IO
                )

    async def _transfer(
        self, handle: BatchHandle, index: int, item: ResolvedArtifact
    ) -> TransferOutcome:
        kind, total = handle.kind, handle.total
        # No await before this point, so Started events keep queue order.
        self._emit(
            Started(kind, index, total, item.name, folder=item.folder, size=item.size)
        )

        try:
            exists = await asyncio.to_thread(item.destination.exists)
        except OSError as e:
            error = IoError(f"Could not check '{item.destination}': {e}")
            return self._fail(handle, index, item, error, FailureReason.IO)
        if exists:
            log.info(f"[yellow]Skipping '{item.name}': already exists.[/yellow]")
            self.stats.files_skipped_exists += 1
            self._emit(
                Finished(kind, index, total, item.name, folder=item.folder, skipped=True)
            )
            return TransferOutcome(item, OutcomeStatus.SKIPPED_EXISTING)

        temp_path = item.temp_path
        last_emit: float | None = None

        async def on_chunk(chunk_len: int, received: int, expected: int | None) -> None:
            nonlocal last_emit
            await self.stats.add_bytes(chunk_len)
            now = time.monotonic()
            if last_emit is None or now - last_emit >= self.progress_interval:
                last_emit = now
                self._emit(Progress(kind, index, total, item.name, received, expected))

        try:
            try:
                await asyncio.to_thread(item.folder.mkdir, parents=True, exist_ok=True)
            except OSError as e:
                raise IoError(f"Could not create folder '{item.folder}': {e}") from e

            received = await self.downloader.fetch(
                item.url,
                temp_path,
                headers=item.headers or None,
                size_hint=item.size,
                cancel_event=handle._cancel_event,
                on_chunk=on_chunk,
            )
            if handle._cancel_event.is_set():
                raise DownloadCancelled("Download cancelled.")
            if item.sha256:
                try:
                    await verify_sha256(temp_path, item.sha256)
                except FileIntegrityError as e:
                    raise IoError(str(e)) from e

            final_size = item.size or received
            self._emit(Progress(kind, index, total, item.name, received, final_size))
            try:
                await asyncio.to_thread(os.replace, temp_path, item.destination)
            except OSError as e:
                raise IoError(f"Could not move '{item.name}' into place: {e}") from e

        except DownloadCancelled:
            self.stats.files_cancelled += 1
            self._emit(Cancelled(kind, index, total, item.name))
            return TransferOutcome(item, OutcomeStatus.CANCELLED, message="Cancelled.")
        except NetworkError as e:
            return self._fail(handle, index, item, e, self._network_reason(e))
        except IoError as e:
            return self._fail(handle, index, item, e, FailureReason.IO)
        finally:
            await asyncio.to_thread(_remove_if_exists, temp_path)

        self.stats.files_downloaded += 1
        log.info(f"[green]✓ Downloaded '{item.name}'[/green]")
        self._emit(Finished(kind, index, total, item.name, folder=item.folder))
        return TransferOutcome(item, OutcomeStatus.DOWNLOADED, bytes_written=received)

    @staticmethod
    def _network_reason(error: NetworkError) -> FailureReason:
        if error.status in (401, 403):
            return FailureReason.UNAUTHORIZED
        return FailureReason.NETWORK

    def _fail(
        self,
        handle: BatchHandle,
        index: int,
        item: ResolvedArtifact,
        error: Exception,
        reason: FailureReason,
    ) -> TransferOutcome:
        message = str(error)
        if reason is FailureReason.UNAUTHORIZED and handle.kind is TransferKind.LORA:
            message = f"{message}. {Unauthorized()}"

        self.stats.files_failed += 1
        log.error(f"[red]✗ Failed to download '{item.name}': {message}[/red]")
        self._emit(Failed(handle.kind, index, handle.total, item.name, message, reason))
        return TransferOutcome(item, OutcomeStatus.FAILED, message=message, reason=reason)

    def _summarize(
        self,
        handle: BatchHandle,
        items: list[ResolvedArtifact],
        outcomes: list[TransferOutcome | None],
    ) -> tuple[BatchResult, TransferEvent]:
        final = [
            outcome
            if outcome is not None
            else TransferOutcome(item, OutcomeStatus.CANCELLED, message="Not started.")
            for item, outcome in zip(items, outcomes)
        ]
        succeeded = sum(1 for o in final if o.succeeded)
        failed = sum(1 for o in final if o.status is OutcomeStatus.FAILED)

        if handle._cancel_event.is_set():
            log.info(f"[yellow]{handle.kind.value.capitalize()} batch cancelled.[/yellow]")
            return (
                BatchResult(BatchStatus.CANCELLED, final),
                BatchCancelled(handle.kind, handle.total),
            )
        if succeeded:
            log.info(
                f"Batch finished: {succeeded} succeeded, {failed} failed "
                f"of {handle.total}."
            )
            return (
                BatchResult(BatchStatus.FINISHED, final),
                BatchFinished(handle.kind, handle.total, succeeded, failed),
            )
        return (
            BatchResult(BatchStatus.FAILED, final),
            BatchFailed(
                handle.kind, handle.total, f"All {handle.total} download(s) failed."
            ),
        )
