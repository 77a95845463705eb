"""
Startup sequencing and readiness tracking for the archive services.
"""

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docarchive.exceptions import InitializationError, NotInitializedError, ReadinessTimeoutError
from docarchive.utils.logging import get_logger

if TYPE_CHECKING:
    from docarchive.rag.embeddings import EmbeddingService
    from docarchive.rag.pipeline import DocumentPipeline
    from docarchive.rag.vectorstore import LanceDBVectorStore
    from docarchive.watch.watcher import DirectoryWatcher

logger = get_logger(__name__)

EMBEDDING = "embedding"
DATABASE = "database"
DOCUMENT_PROCESSOR = "document_processor"
DIRECTORY_WATCHER = "directory_watcher"


class InitializationState(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


class ServiceStatus(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ready: bool = False
    error: Optional[str] = None


class ServiceReadinessStatus(BaseModel):
    """Aggregate readiness, as reported to callers."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_ready: bool = False
    services: dict[str, ServiceStatus] = Field(default_factory=dict)
    initialization_state: InitializationState = InitializationState.PENDING
    initialization_error: Optional[str] = None


def _initial_status() -> ServiceReadinessStatus:
    return ServiceReadinessStatus(
        services={name: ServiceStatus() for name in (EMBEDDING, DATABASE, DOCUMENT_PROCESSOR)}
    )


class ReadinessManager:
    """
    Runs the service startup sequence once and tracks its outcome.

    Services start in a fixed order: embedding, database, document
    processor, then the directory watcher for each requested directory.
    The first failure marks that service, moves the manager to FAILED and
    stops the sequence. FAILED is permanent until ``reset()``.
    """

    def __init__(
        self,
        embedding: "EmbeddingService",
        store: "LanceDBVectorStore",
        pipeline: "DocumentPipeline",
        watcher: "DirectoryWatcher | None" = None,
    ):
        self.embedding = embedding
        self.store = store
        self.pipeline = pipeline
        self.watcher = watcher
        self._status = _initial_status()
        self._task: asyncio.Task | None = None
        self._settled = asyncio.Event()

    @property
    def state(self) -> InitializationState:
        return self._status.initialization_state

    @property
    def is_ready(self) -> bool:
        return self.state == InitializationState.COMPLETE

    @property
    def has_failed(self) -> bool:
        return self.state == InitializationState.FAILED

    @property
    def is_initializing(self) -> bool:
        return self._task is not None

    @property
    def status(self) -> ServiceReadinessStatus:
        """A snapshot of the current status."""
        return self._status.model_copy(deep=True)

    async def initialize(self, directories: Iterable[str] | None = None) -> None:
        """Start every service, or join the startup already in flight."""
        if self.is_ready:
            return
        if self.has_failed:
            raise InitializationError(
                f"Initialization failed: {self._status.initialization_error}. Call reset() before retrying."
            )
        if self._task is None:
            self._task = asyncio.create_task(self._run(list(directories or [])))
        await asyncio.shield(self._task)

    async def _run(self, directories: list[str]) -> None:
        steps: list[tuple[str, Callable[[], Awaitable[None]]]] = [
            (EMBEDDING, self.embedding.initialize),
            (DATABASE, self.store.initialize),
            (DOCUMENT_PROCESSOR, self.pipeline.initialize),
        ]
        if directories:
            self._status.services[DIRECTORY_WATCHER] = ServiceStatus()
            steps.append((DIRECTORY_WATCHER, lambda: self._watch(directories)))

        try:
            for name, start in steps:
                logger.info(f"Initializing {name} service")
                try:
                    await start()
                except Exception as e:
                    self._status.services[name] = ServiceStatus(ready=False, error=str(e))
                    self._status.initialization_state = InitializationState.FAILED
                    self._status.initialization_error = f"{name}: {e}"
                    self._settled.set()
                    logger.error(f"Failed to initialize {name} service: {e}")
                    raise InitializationError(f"Failed to initialize {name} service: {e}") from e
                self._status.services[name].ready = True
                logger.info(f"{name} service ready")

            self._status.is_ready = True
            self._status.initialization_state = InitializationState.COMPLETE
            self._settled.set()
            logger.info("All services initialized")
        finally:
            self._task = None

    async def _watch(self, directories: list[str]) -> None:
        if self.watcher is None:
            raise InitializationError("No directory watcher configured")
        try:
            for directory in directories:
                await self.watcher.watch_directory(directory)
        except Exception:
            # Directories watched before the failure must not keep feeding the pipeline.
            try:
                await self.watcher.stop_watching()
            except Exception as e:
                logger.warning(f"Error stopping directory watcher after failed startup: {e}")
            raise

    async def wait_for_ready(self, timeout: float = 100.0) -> None:
        """Block until every service is ready.

        Raises:
            InitializationError: Startup failed, before or during the wait
            ReadinessTimeoutError: Not ready within ``timeout`` seconds
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not self.is_ready and not self.has_failed:
            # reset() clears the event, so a wake-up is re-checked against the state.
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ReadinessTimeoutError(timeout)
            try:
                await asyncio.wait_for(self._settled.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                raise ReadinessTimeoutError(timeout) from None

        if self.has_failed:
            raise InitializationError(f"Initialization failed: {self._status.initialization_error}")

    def require_ready(self, service: str = "DocumentArchive") -> None:
        if not self.is_ready:
            raise NotInitializedError(service)

    def reset(self) -> None:
        """Return to PENDING so ``initialize()`` can be called again."""
        if self._task is not None:
            raise InitializationError("Cannot reset while initialization is running")
        self._status = _initial_status()
        self._settled.clear()
        logger.info("Readiness state reset")
