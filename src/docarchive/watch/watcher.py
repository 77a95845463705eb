"""
Directory watcher feeding filesystem changes into the ingestion pipeline.
"""

import asyncio
import os
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from watchfiles import Change, awatch

from docarchive.exceptions import WatchError
from docarchive.utils.logging import get_logger

from .debounce import KeyedDebouncer

if TYPE_CHECKING:
    from docarchive.rag.document import DocumentChunk
    from docarchive.rag.pipeline import DocumentPipeline

logger = get_logger(__name__)

# How long watchfiles groups raw notifications before yielding them.
_BATCH_MS = 50


class FileEvent(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    # A file found by the initial scan of a directory.
    EXISTING = "existing"


_CHANGE_EVENTS = {
    Change.added: FileEvent.ADDED,
    Change.modified: FileEvent.MODIFIED,
    Change.deleted: FileEvent.DELETED,
}


def merge_events(previous: FileEvent, current: FileEvent) -> FileEvent:
    """Combine two events seen for one path within a debounce window."""
    if current == FileEvent.DELETED:
        return FileEvent.DELETED
    if previous == FileEvent.ADDED and current == FileEvent.MODIFIED:
        return FileEvent.ADDED
    if previous == FileEvent.DELETED:
        # The old chunks must go before the new content is stored.
        return FileEvent.MODIFIED
    return current


def normalize_extensions(extensions: Iterable[str]) -> set[str]:
    return {ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions}


class DirectoryWatcher:
    """
    Watches any number of directories and keeps the archive in sync.

    Events for a path are debounced, then:
    - added: the file is processed as a new document
    - modified: its chunks are replaced (delete, then process)
    - deleted: its chunks are deleted

    Writes are only acted on once the file's size and mtime have stayed the
    same for the stability window. Errors are logged per file.
    """

    def __init__(
        self,
        pipeline: "DocumentPipeline",
        extensions: Iterable[str] | None = None,
        depth: int = 10,
        debounce_ms: int = 500,
        stability_ms: int = 2000,
        poll_interval_ms: int = 100,
        watch_existing_files: bool = True,
        force_polling: bool | None = None,
    ):
        self.pipeline = pipeline
        self.extensions = normalize_extensions(extensions if extensions is not None else pipeline.loaders.extensions)
        self.depth = depth
        self.stability_ms = stability_ms
        self.poll_interval_ms = poll_interval_ms
        self.watch_existing_files = watch_existing_files
        self.force_polling = force_polling
        self._debouncer = KeyedDebouncer(debounce_ms / 1000, self._handle, merge=merge_events)
        self._watches: dict[str, tuple[asyncio.Task, asyncio.Event]] = {}

    @property
    def is_active(self) -> bool:
        return bool(self._watches)

    @property
    def watched_directories(self) -> list[str]:
        return list(self._watches)

    async def watch_directory(self, directory: str, watch_existing: bool | None = None) -> None:
        """Start watching a directory tree.

        Other watched directories are unaffected. Watching a directory that
        is already watched restarts only that watch.
        """
        path = os.path.abspath(directory)
        if not os.path.isdir(path):
            raise WatchError(path, "not a directory")

        if path in self._watches:
            logger.info(f"Restarting watch on {path}")
            await self.unwatch_directory(path)

        stop_event = asyncio.Event()
        task = asyncio.create_task(self._watch_loop(path, stop_event))
        self._watches[path] = (task, stop_event)
        logger.info(f"Watching directory: {path} (extensions: {', '.join(sorted(self.extensions))})")

        if self.watch_existing_files if watch_existing is None else watch_existing:
            found = self._scan_existing(path)
            logger.info(f"Found {found} existing files in {path}")

    async def unwatch_directory(self, directory: str) -> bool:
        """Stop watching one directory. Returns False if it was not watched."""
        path = os.path.abspath(directory)
        watch = self._watches.pop(path, None)
        if watch is None:
            return False

        task, stop_event = watch
        stop_event.set()
        await task

        for key in self._debouncer.pending_keys():
            if self._is_under(path, key):
                self._debouncer.cancel(key)
        logger.info(f"Stopped watching directory: {path}")
        return True

    async def stop_watching(self) -> None:
        """Stop every watch and drop pending events."""
        for path in list(self._watches):
            await self.unwatch_directory(path)
        self._debouncer.cancel_all()
        await self._debouncer.drain()
        logger.info("Directory watcher stopped")

    async def process_file(self, file_path: str) -> "list[DocumentChunk]":
        """Process one file now, outside of any watch."""
        logger.info(f"Manually processing file: {file_path}")
        return await self.pipeline.process_document(file_path)

    async def flush(self) -> None:
        """Handle all pending events immediately."""
        await self._debouncer.flush()

    async def _watch_loop(self, root: str, stop_event: asyncio.Event) -> None:
        try:
            async for changes in awatch(
                root,
                stop_event=stop_event,
                debounce=_BATCH_MS,
                force_polling=self.force_polling,
            ):
                for change, changed_path in changes:
                    self._on_event(root, _CHANGE_EVENTS[change], changed_path)
        except Exception as e:
            logger.error(f"Watcher for {root} stopped: {e}")

    def _scan_existing(self, root: str) -> int:
        found = 0
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for filename in filenames:
                file_path = os.path.join(dirpath, filename)
                if self.should_handle(root, file_path):
                    self._debouncer.schedule(file_path, FileEvent.EXISTING)
                    found += 1
        return found

    def _on_event(self, root: str, event: FileEvent, file_path: str) -> None:
        if not self.should_handle(root, file_path):
            return
        logger.debug(f"File {event.value}: {file_path}")
        self._debouncer.schedule(file_path, event)

    def should_handle(self, root: str, file_path: str) -> bool:
        """Apply the extension, hidden-path and depth filters."""
        if os.path.splitext(file_path)[1].lower() not in self.extensions:
            return False
        relative = os.path.relpath(file_path, root)
        parts = relative.split(os.sep)
        if parts[0] == os.pardir:
            return False
        if any(part.startswith(".") for part in parts):
            return False
        return len(parts) - 1 <= self.depth

    @staticmethod
    def _is_under(root: str, file_path: str) -> bool:
        return os.path.commonpath([root, file_path]) == root

    async def _handle(self, file_path: str, event: FileEvent) -> None:
        try:
            if event == FileEvent.DELETED:
                logger.info(f"File removed: {file_path}")
                await self.pipeline.delete_document(file_path)
                return

            if not await self._wait_for_stable(file_path):
                logger.info(f"File disappeared before it settled: {file_path}")
                return

            if event == FileEvent.ADDED:
                logger.info(f"New file detected: {file_path}")
                await self.pipeline.process_document(file_path)
            else:
                logger.info(f"File {event.value}: {file_path}")
                await self.pipeline.reprocess_document(file_path)
        except Exception as e:
            logger.error(f"Error handling {event.value} event for {file_path}: {e}")

    async def _wait_for_stable(self, file_path: str) -> bool:
        """Wait until size and mtime stop changing. False if the file is gone."""
        loop = asyncio.get_running_loop()
        window = self.stability_ms / 1000
        last = None
        stable_since = loop.time()
        while True:
            try:
                stat = os.stat(file_path)
            except FileNotFoundError:
                return False
            signature = (stat.st_size, stat.st_mtime_ns)
            now = loop.time()
            if signature != last:
                last = signature
                stable_since = now
            elif now - stable_since >= window:
                return True
            await asyncio.sleep(self.poll_interval_ms / 1000)
