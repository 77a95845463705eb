"""File loaders, keyed by extension."""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from docarchive.exceptions import LoaderError, UnsupportedFileTypeError

from .base import BaseLoader
from .document import LoadedSegment

logger = logging.getLogger(__name__)


class TextLoader(BaseLoader):
    """Plain text and Markdown files, loaded as a single segment."""

    extensions = (".txt", ".md")

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def load(self, file_path: str) -> list[LoadedSegment]:
        try:
            text = Path(file_path).read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise LoaderError(file_path, str(e)) from e
        return [LoadedSegment(text=text)]


class PdfLoader(BaseLoader):
    """PDF files via pypdf, one segment per page."""

    extensions = (".pdf",)

    def load(self, file_path: str) -> list[LoadedSegment]:
        from pypdf import PdfReader

        try:
            reader = PdfReader(file_path)
            segments = []
            for number, page in enumerate(reader.pages, start=1):
                segments.append(LoadedSegment(text=page.extract_text() or "", metadata={"page_number": number}))
            title = (reader.metadata or {}).get("/Title")
        except Exception as e:
            raise LoaderError(file_path, str(e)) from e

        if title and isinstance(title, str):
            for segment in segments:
                segment.metadata["title"] = title
        return segments


class DocxLoader(BaseLoader):
    """Word documents via python-docx, loaded as a single segment."""

    extensions = (".docx",)

    def load(self, file_path: str) -> list[LoadedSegment]:
        from docx import Document

        try:
            doc = Document(file_path)
        except Exception as e:
            raise LoaderError(file_path, str(e)) from e

        text = "\n".join(p.text for p in doc.paragraphs)
        metadata: dict[str, Any] = {}
        if doc.core_properties.title:
            metadata["title"] = doc.core_properties.title
        if doc.core_properties.language:
            metadata["language"] = doc.core_properties.language
        return [LoadedSegment(text=text, metadata=metadata)]


class CsvLoader(BaseLoader):
    """CSV files, one segment per row rendered as ``column: value`` lines."""

    extensions = (".csv",)

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def load(self, file_path: str) -> list[LoadedSegment]:
        try:
            with open(file_path, newline="", encoding=self.encoding) as f:
                rows = list(csv.DictReader(f))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise LoaderError(file_path, str(e)) from e

        segments = []
        for row in rows:
            lines = [f"{key}: {value}" for key, value in row.items() if key is not None]
            segments.append(LoadedSegment(text="\n".join(lines)))
        return segments


class JsonLoader(BaseLoader):
    """JSON files; every string leaf, in document order, joined by newlines."""

    extensions = (".json",)

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def load(self, file_path: str) -> list[LoadedSegment]:
        try:
            with open(file_path, encoding=self.encoding) as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise LoaderError(file_path, str(e)) from e
        return [LoadedSegment(text="\n".join(_string_leaves(data)))]


def _string_leaves(value: Any) -> Iterable[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _string_leaves(item)
    elif isinstance(value, list):
        for item in value:
            yield from _string_leaves(item)


def default_loaders() -> list[BaseLoader]:
    return [TextLoader(), PdfLoader(), DocxLoader(), CsvLoader(), JsonLoader()]


class LoaderRegistry:
    """Static extension -> loader table.

    Extensions are matched case-insensitively. A later loader claiming an
    extension replaces the earlier one.
    """

    def __init__(self, loaders: Optional[list[BaseLoader]] = None):
        self._loaders: dict[str, BaseLoader] = {}
        for loader in default_loaders() if loaders is None else loaders:
            self.register(loader)

    def register(self, loader: BaseLoader) -> None:
        for extension in loader.extensions:
            self._loaders[extension.lower()] = loader

    @property
    def extensions(self) -> list[str]:
        return sorted(self._loaders)

    def supports(self, extension: str) -> bool:
        return extension.lower() in self._loaders

    def get(self, extension: str) -> BaseLoader:
        loader = self._loaders.get(extension.lower())
        if loader is None:
            raise UnsupportedFileTypeError(extension)
        return loader

    def load(self, file_path: str) -> list[LoadedSegment]:
        """Load a file with the loader registered for its extension."""
        extension = Path(file_path).suffix
        try:
            loader = self.get(extension)
        except UnsupportedFileTypeError as e:
            e.file_path = file_path
            raise
        logger.debug(f"Loading {file_path} with {type(loader).__name__}")
        return loader.load(file_path)
