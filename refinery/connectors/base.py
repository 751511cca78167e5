"""Abstract base class for tabular connectors."""

from abc import ABC, abstractmethod
from typing import List, NamedTuple

from refinery.utils.cells import Row


class MalformedInputError(ValueError):
    """Raised when source text cannot yield a header row."""


class ParsedTable(NamedTuple):
    headers: List[str]
    rows: List[Row]


class TabularConnector(ABC):
    """Interface that every tabular source must implement."""

    source_type: str = "unknown"

    @abstractmethod
    def parse_text(self, text: str) -> ParsedTable:
        """Parse raw text into headers and typed rows.

        Raises MalformedInputError when no header can be derived. A table with
        headers but zero rows is returned as-is; callers decide what "no usable
        data" means.
        """

    @abstractmethod
    def read_file(self, path: str) -> ParsedTable:
        """Decode and parse the file at *path*."""
