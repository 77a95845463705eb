"""Document chunking."""

from collections import deque
from dataclasses import dataclass
from typing import Optional

Span = tuple[int, int]


@dataclass(frozen=True)
class TextSpan:
    """A chunk of text and its [start, end) offsets in the source."""
    start: int
    end: int
    text: str


class RecursiveChunker:
    """Recursively chunk text using multiple separators.

    Tries to split on larger separators first (paragraphs), then
    progressively smaller ones (lines, words) as needed, and finally cuts
    single characters. Neighbouring pieces are merged back into chunks of
    at most ``chunk_size`` characters, each repeating up to
    ``chunk_overlap`` characters from the end of the previous one.

    The splitter works on offsets rather than strings, so every chunk maps
    back to an exact slice of the source text.
    """

    DEFAULT_SEPARATORS = ["\n\n", "\n", " ", ""]

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        separators: Optional[list[str]] = None,
    ):
        """Initialize the recursive chunker.

        Args:
            chunk_size: Maximum characters per chunk
            chunk_overlap: Maximum characters shared by consecutive chunks
            separators: Separators to try, in order of preference
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError("Overlap must be less than chunk_size")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(separators or self.DEFAULT_SEPARATORS)
        if "" not in self.separators:
            self.separators.append("")

    def split(self, text: str) -> list[TextSpan]:
        """Split text into chunks with whitespace trimmed from their edges.

        Whitespace-only text yields no chunks.
        """
        spans = []
        for start, end in self._split(text, 0, len(text), self.separators):
            while start < end and text[start].isspace():
                start += 1
            while end > start and text[end - 1].isspace():
                end -= 1
            if start < end:
                spans.append(TextSpan(start=start, end=end, text=text[start:end]))
        return spans

    def _split(self, text: str, start: int, end: int, separators: list[str]) -> list[Span]:
        separator = ""
        remaining: list[str] = []
        for i, sep in enumerate(separators):
            if sep == "":
                break
            if text.find(sep, start, end) != -1:
                separator = sep
                remaining = separators[i + 1:]
                break

        chunks: list[Span] = []
        small: list[Span] = []
        for piece_start, piece_end in self._pieces(text, start, end, separator):
            if piece_end - piece_start <= self.chunk_size:
                small.append((piece_start, piece_end))
                continue
            if small:
                chunks.extend(self._merge(small))
                small = []
            chunks.extend(self._split(text, piece_start, piece_end, remaining or [""]))
        if small:
            chunks.extend(self._merge(small))
        return chunks

    @staticmethod
    def _pieces(text: str, start: int, end: int, separator: str) -> list[Span]:
        # Each separator stays attached to the piece before it.
        if separator == "":
            return [(i, i + 1) for i in range(start, end)]

        pieces = []
        pos = start
        while True:
            idx = text.find(separator, pos, end)
            if idx == -1:
                break
            pieces.append((pos, idx + len(separator)))
            pos = idx + len(separator)
        if pos < end:
            pieces.append((pos, end))
        return pieces

    def _merge(self, pieces: list[Span]) -> list[Span]:
        # Pieces are contiguous, so a chunk is just (first start, last end).
        chunks = []
        current: deque[Span] = deque()
        total = 0
        for piece_start, piece_end in pieces:
            length = piece_end - piece_start
            if current and total + length > self.chunk_size:
                chunks.append((current[0][0], current[-1][1]))
                while total > self.chunk_overlap or (total + length > self.chunk_size and total > 0):
                    dropped_start, dropped_end = current.popleft()
                    total -= dropped_end - dropped_start
            current.append((piece_start, piece_end))
            total += length
        if current:
            chunks.append((current[0][0], current[-1][1]))
        return chunks
