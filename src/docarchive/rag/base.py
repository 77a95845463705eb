"""Base classes and abstract interfaces for archive components."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .document import LoadedSegment


class BaseEmbedding(ABC):
    """Abstract base class for embedding models."""

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        pass

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @property
    def model_name(self) -> str:
        return type(self).__name__

    async def load(self) -> None:
        """Load model weights. Backends that need no setup keep the default."""


class BaseLoader(ABC):
    """Abstract base class for file loaders.

    Loaders are synchronous; the pipeline runs them in an executor.
    """

    extensions: tuple[str, ...] = ()

    @abstractmethod
    def load(self, file_path: str) -> list["LoadedSegment"]:
        pass
