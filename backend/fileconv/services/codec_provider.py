"""
Codec provider interface
The engine performs byte-level work only through this capability surface
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Protocol

from fileconv.models.conversion import ConversionOptions
from fileconv.models.formats import Format


@dataclass
class Table:
    """Tabular in-memory model: one header row plus rows of cells"""
    columns: List[str]
    rows: List[List[Any]]
    sheet_name: str = "Sheet1"

    def records(self) -> List[dict]:
        """Rows keyed by header (missing cells become None)"""
        return [
            {column: (row[i] if i < len(row) else None) for i, column in enumerate(self.columns)}
            for row in self.rows
        ]


@dataclass
class Section:
    """One slide or chapter of extracted content"""
    title: str
    text: str


@dataclass
class DocumentContent:
    """Normalized document handed to a renderer"""
    title: str
    paragraphs: List[str] = field(default_factory=list)
    html: Optional[str] = None

    @property
    def text(self) -> str:
        return "\n".join(self.paragraphs)


class CodecProvider(Protocol):
    def extract_text(self, path: Path, fmt: Format) -> str:
        """Return the plain text of a text-bearing file.

        Raises ExtractionUnavailable when no extractor exists for *fmt* and
        CodecFailure when the file cannot be decoded.
        """

    def extract_sections(self, path: Path, fmt: Format) -> List[Section]:
        """Return slides/chapters in reading order (same errors as extract_text)."""

    def open_raster(self, path: Path) -> Any:
        """Decode an image file into an opaque raster handle."""

    def encode_raster(self, image: Any, fmt: Format, options: ConversionOptions) -> bytes:
        """Encode a raster handle into *fmt*, applying resize/quality options."""

    def parse_tabular(self, path: Path, fmt: Format) -> Table:
        ...

    def render_tabular(self, table: Table, fmt: Format) -> bytes:
        ...

    def render_document(self, content: DocumentContent, fmt: Format) -> bytes:
        """Render a document container (pdf, docx, odt)."""
