"""
Format capability registry
Static table of formats per category and the conversion matrix
"""
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from fileconv.models.formats import Category, Format, FormatCapability

F = Format

# Any known source may degrade to these targets (lossy)
FALLBACK_TARGETS: FrozenSet[Format] = frozenset({F.TXT, F.HTML, F.PDF})

_DOCUMENT_FORMATS = frozenset({F.DOC, F.DOCX, F.PDF, F.TXT, F.RTF, F.ODT, F.HTML})
_IMAGE_FORMATS = frozenset({F.JPG, F.JPEG, F.PNG, F.BMP, F.TIFF, F.WEBP, F.GIF})

CAPABILITIES: Tuple[FormatCapability, ...] = (
    FormatCapability(
        category=Category.DOCUMENT,
        description="Document formats including Word, PDF, and text files",
        extensions=_DOCUMENT_FORMATS,
        targets=_DOCUMENT_FORMATS,
    ),
    FormatCapability(
        category=Category.IMAGE,
        description="Image formats with quality optimization",
        extensions=_IMAGE_FORMATS,
        targets=_IMAGE_FORMATS,
    ),
    FormatCapability(
        category=Category.SPREADSHEET,
        description="Spreadsheet and data formats",
        extensions=frozenset({F.XLSX, F.XLS, F.CSV, F.ODS}),
        targets=frozenset({F.XLSX, F.CSV, F.JSON, F.HTML}),
    ),
    FormatCapability(
        category=Category.PRESENTATION,
        description="Presentation formats",
        extensions=frozenset({F.PPTX, F.PPT, F.ODP}),
        targets=frozenset(),
    ),
    FormatCapability(
        category=Category.EBOOK,
        description="E-book formats",
        extensions=frozenset({F.EPUB, F.MOBI, F.AZW}),
        targets=frozenset(),
    ),
)

# Display order inside each category
_ORDER: Dict[Format, int] = {fmt: index for index, fmt in enumerate(Format)}

MIME_TYPES: Dict[Format, str] = {
    # Documents
    F.PDF: "application/pdf",
    F.DOCX: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    F.DOC: "application/msword",
    F.TXT: "text/plain",
    F.RTF: "application/rtf",
    F.ODT: "application/vnd.oasis.opendocument.text",
    F.HTML: "text/html",
    # Images
    F.JPG: "image/jpeg",
    F.JPEG: "image/jpeg",
    F.PNG: "image/png",
    F.BMP: "image/bmp",
    F.TIFF: "image/tiff",
    F.WEBP: "image/webp",
    F.GIF: "image/gif",
    # Spreadsheets
    F.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    F.XLS: "application/vnd.ms-excel",
    F.CSV: "text/csv",
    F.ODS: "application/vnd.oasis.opendocument.spreadsheet",
    F.JSON: "application/json",
    # Presentations
    F.PPTX: "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    F.PPT: "application/vnd.ms-powerpoint",
    F.ODP: "application/vnd.oasis.opendocument.presentation",
    # E-books
    F.EPUB: "application/epub+zip",
    F.MOBI: "application/x-mobipocket-ebook",
    F.AZW: "application/vnd.amazon.ebook",
}

FormatToken = Union[str, Format, None]


class FormatRegistry:
    """Read-only lookup over the capability table; no I/O"""

    def __init__(self, capabilities: Tuple[FormatCapability, ...] = CAPABILITIES):
        self._capabilities = {cap.category: cap for cap in capabilities}
        self._category_by_format: Dict[Format, Category] = {}
        for cap in capabilities:
            for fmt in cap.extensions:
                # First category wins for tokens listed twice
                self._category_by_format.setdefault(fmt, cap.category)

    def capability(self, category: Category) -> FormatCapability:
        return self._capabilities[category]

    def category_of(self, fmt: FormatToken) -> Optional[Category]:
        parsed = Format.parse(fmt)
        if parsed is None:
            return None
        return self._category_by_format.get(parsed)

    def is_supported(self, source: FormatToken, target: FormatToken) -> bool:
        """Whether source -> target is in the matrix (same-category or fallback)"""
        category = self.category_of(source)
        target_fmt = Format.parse(target)
        if category is None or target_fmt is None:
            return False
        return target_fmt in self._capabilities[category].targets or target_fmt in FALLBACK_TARGETS

    def is_fallback(self, source: FormatToken, target: FormatToken) -> bool:
        """Whether the pair is only reachable through the lossy fallback path"""
        category = self.category_of(source)
        target_fmt = Format.parse(target)
        if category is None or target_fmt is None:
            return False
        return target_fmt in FALLBACK_TARGETS and target_fmt not in self._capabilities[category].targets

    def targets_for(self, source: FormatToken) -> List[Format]:
        category = self.category_of(source)
        if category is None:
            return []
        return self._sorted(self._capabilities[category].targets | FALLBACK_TARGETS)

    def list_formats(self) -> Dict[Category, List[Format]]:
        return {
            category: self._sorted(cap.extensions)
            for category, cap in self._capabilities.items()
        }

    def describe(self) -> List[Dict[str, object]]:
        """Category listing served by GET /formats"""
        return [
            {
                "category": category.value,
                "description": cap.description,
                "formats": [fmt.value for fmt in self._sorted(cap.extensions)],
                "targets": [fmt.value for fmt in self._sorted(cap.targets | FALLBACK_TARGETS)],
            }
            for category, cap in self._capabilities.items()
        ]

    def total_formats(self) -> int:
        return sum(len(cap.extensions) for cap in self._capabilities.values())

    @staticmethod
    def mime_type(fmt: FormatToken) -> str:
        parsed = Format.parse(fmt)
        if parsed is None:
            return "application/octet-stream"
        return MIME_TYPES.get(parsed, "application/octet-stream")

    @staticmethod
    def _sorted(formats) -> List[Format]:
        return sorted(formats, key=lambda fmt: _ORDER[fmt])


# Global instance
format_registry = FormatRegistry()
