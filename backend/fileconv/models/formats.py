"""
Format and category models
"""
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Optional, Union

from pydantic import BaseModel, ConfigDict


class Category(str, Enum):
    """Format category sharing one conversion strategy"""
    DOCUMENT = "document"
    IMAGE = "image"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    EBOOK = "ebook"


class Format(str, Enum):
    """Known format tokens (lower-cased file extensions)"""
    # Documents
    DOC = "doc"
    DOCX = "docx"
    PDF = "pdf"
    TXT = "txt"
    RTF = "rtf"
    ODT = "odt"
    HTML = "html"
    # Images
    JPG = "jpg"
    JPEG = "jpeg"
    PNG = "png"
    BMP = "bmp"
    TIFF = "tiff"
    WEBP = "webp"
    GIF = "gif"
    # Spreadsheets
    XLSX = "xlsx"
    XLS = "xls"
    CSV = "csv"
    ODS = "ods"
    JSON = "json"
    # Presentations
    PPTX = "pptx"
    PPT = "ppt"
    ODP = "odp"
    # E-books
    EPUB = "epub"
    MOBI = "mobi"
    AZW = "azw"

    @classmethod
    def parse(cls, token: Optional[Union[str, "Format"]]) -> Optional["Format"]:
        """Normalize a raw token ("  .PDF ") to a Format, or None if unknown/empty"""
        if isinstance(token, Format):
            return token
        if token is None:
            return None
        normalized = str(token).strip().lstrip(".").lower()
        if not normalized:
            return None
        try:
            return cls(normalized)
        except ValueError:
            return None

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> Optional["Format"]:
        return cls.parse(Path(str(path)).suffix)


def extension_of(filename: Optional[str]) -> str:
    """Lower-cased extension token of a filename, '' if none"""
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].strip().lower()


class FormatCapability(BaseModel):
    """Formats of one category and the targets it converts to natively"""
    model_config = ConfigDict(frozen=True)

    category: Category
    description: str
    extensions: FrozenSet[Format]
    targets: FrozenSet[Format]


def format_token(value: Optional[Union[str, Format]]) -> str:
    """Raw token for messages: enum value, or the caller's string"""
    if isinstance(value, Format):
        return value.value
    return str(value or "").strip()
