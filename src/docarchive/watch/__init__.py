"""Filesystem watching."""

from .debounce import KeyedDebouncer
from .watcher import DirectoryWatcher, FileEvent, merge_events

__all__ = [
    "DirectoryWatcher",
    "FileEvent",
    "KeyedDebouncer",
    "merge_events",
]
