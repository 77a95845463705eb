"""
Document archive exceptions.
"""


class ArchiveError(Exception):
    """Base exception for document archive errors."""

    def __init__(self, message: str, code: int | None = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class NotInitializedError(ArchiveError):
    """Raised when a service is used before it finished initializing."""

    def __init__(self, service: str = "Service"):
        self.service = service
        super().__init__(f"{service} not initialized. Call initialize() first.", code=1001)


class ConfigError(ArchiveError):
    """Raised when the configuration is invalid."""

    def __init__(self, message: str):
        super().__init__(message, code=1002)


class UnsupportedFileTypeError(ArchiveError):
    """Raised when no loader handles a file extension."""

    def __init__(self, extension: str, file_path: str | None = None):
        self.extension = extension
        self.file_path = file_path
        super().__init__(f"Unsupported file type: {extension or '<none>'}", code=2001)


class EmptyDocumentError(ArchiveError):
    """Raised when a loader produced no usable content."""

    def __init__(self, file_path: str):
        self.file_path = file_path
        super().__init__(f"Failed to extract content from document: {file_path}", code=2002)


class LoaderError(ArchiveError):
    """Raised when a file cannot be read or parsed."""

    def __init__(self, file_path: str, message: str):
        self.file_path = file_path
        super().__init__(f"Failed to load '{file_path}': {message}", code=2003)


class EmbeddingError(ArchiveError):
    """Raised when the embedding model fails."""

    def __init__(self, message: str):
        super().__init__(message, code=3001)


class EmbeddingNotInitializedError(NotInitializedError, EmbeddingError):
    """Raised when embedding is requested before the model is loaded."""

    def __init__(self):
        self.service = "EmbeddingService"
        ArchiveError.__init__(self, "Embedding model not initialized. Call initialize() first.", code=1001)


class StoreConnectionError(ArchiveError):
    """Raised when the vector store cannot be opened."""

    def __init__(self, message: str):
        super().__init__(message, code=4001)


class SchemaError(ArchiveError):
    """Raised when the chunk table schema does not match the embedding model."""

    def __init__(self, message: str):
        super().__init__(message, code=4002)


class QueryExecutionError(ArchiveError):
    """Raised when a store read or write fails."""

    def __init__(self, message: str):
        super().__init__(message, code=4003)


class InitializationError(ArchiveError):
    """Raised when the startup sequence has failed."""

    def __init__(self, message: str):
        super().__init__(message, code=5001)


class ReadinessTimeoutError(ArchiveError, TimeoutError):
    """Raised when waiting for readiness takes too long."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for services to be ready", code=5002)


class WatchError(ArchiveError):
    """Raised when a directory cannot be watched."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Cannot watch '{path}': {message}", code=6001)
