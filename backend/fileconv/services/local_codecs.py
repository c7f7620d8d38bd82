"""
Local codec provider
Default CodecProvider built on Pillow, pdfplumber, openpyxl, pandas and WeasyPrint.
OOXML / ODF / EPUB containers are read and written as zip packages of XML parts.
"""
import io
import json
import logging
import posixpath
import re
import zipfile
import xml.etree.ElementTree as ET
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List
from xml.sax.saxutils import escape as xml_escape

import pandas as pd
import pdfplumber
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from PIL import Image, ImageOps, UnidentifiedImageError

from fileconv.core.errors import CodecFailure, ExtractionUnavailable, TransientCodecFailure
from fileconv.models.conversion import ConversionOptions, ResizeFit
from fileconv.models.formats import Format
from fileconv.services.codec_provider import DocumentContent, Section, Table
from fileconv.services.text_markup import (
    escape_html,
    html_title,
    html_to_text,
    rtf_to_text,
    text_to_html,
    wrap_html,
)

logger = logging.getLogger(__name__)

NS = {
    "w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main",
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
    "office": "urn:oasis:names:tc:opendocument:xmlns:office:1.0",
    "text": "urn:oasis:names:tc:opendocument:xmlns:text:1.0",
    "draw": "urn:oasis:names:tc:opendocument:xmlns:drawing:1.0",
    "container": "urn:oasis:names:tc:opendocument:xmlns:container",
    "opf": "http://www.idpf.org/2007/opf",
}

_PIL_FORMATS = {
    Format.JPG: "JPEG",
    Format.JPEG: "JPEG",
    Format.PNG: "PNG",
    Format.BMP: "BMP",
    Format.TIFF: "TIFF",
    Format.WEBP: "WEBP",
    Format.GIF: "GIF",
    Format.PDF: "PDF",
}

# Characters XML 1.0 cannot carry
_XML_INVALID = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_SLIDE_PART = re.compile(r"^ppt/slides/slide(\d+)\.xml$")

_TABLE_STYLE = """
        body { font-family: Arial, sans-serif; margin: 40px; }
        table { border-collapse: collapse; }
        th, td { border: 1px solid #999; padding: 4px 8px; text-align: left; }
        th { background: #366092; color: #fff; }
"""


@contextmanager
def _codec_errors(action: str, path: Any) -> Iterator[None]:
    """Translate library exceptions into the codec error taxonomy"""
    try:
        yield
    except CodecFailure:
        raise
    except (TimeoutError, BlockingIOError, InterruptedError, ConnectionError) as e:
        raise TransientCodecFailure(f"Temporary failure while trying to {action} {path}: {e}") from e
    except Exception as e:
        raise CodecFailure(f"Failed to {action} {path}: {e}") from e


def _xml_text(value: str) -> str:
    return xml_escape(_XML_INVALID.sub("", value))


def _read_xml(archive: zipfile.ZipFile, name: str) -> ET.Element:
    return ET.fromstring(archive.read(name))


def _paragraph_text(paragraph: ET.Element, text_tag: str) -> str:
    return "".join(node.text or "" for node in paragraph.iter(text_tag))


def local_url_fetcher(url: str, *args, **kwargs):
    """WeasyPrint fetcher that resolves inline data: URIs only"""
    if not url.strip().lower().startswith("data:"):
        # Uploaded markup must not reach local files or the network
        raise ValueError(f"External resource blocked: {url}")
    from weasyprint import default_url_fetcher

    return default_url_fetcher(url, *args, **kwargs)


class LocalCodecProvider:
    """In-process codecs for every format in the capability table"""

    def __init__(self, default_quality: int = 90, default_png_compression: int = 6):
        self._default_quality = default_quality
        self._default_png_compression = default_png_compression

    # ------------------------------------------------------------------
    # Text extraction
    # ------------------------------------------------------------------

    def extract_text(self, path: Path, fmt: Format) -> str:
        path = Path(path)
        if fmt in (Format.PPTX, Format.ODP, Format.EPUB):
            return "\n\n".join(section.text for section in self.extract_sections(path, fmt))
        with _codec_errors("extract text from", path.name):
            if fmt == Format.TXT:
                return path.read_text(encoding="utf-8", errors="replace")
            if fmt == Format.HTML:
                return html_to_text(path.read_text(encoding="utf-8", errors="replace"))
            if fmt == Format.RTF:
                return rtf_to_text(path.read_text(encoding="latin-1"))
            if fmt == Format.PDF:
                return self._pdf_text(path)
            if fmt == Format.DOCX:
                return "\n".join(self._docx_paragraphs(path))
            if fmt == Format.ODT:
                return "\n".join(self._odt_paragraphs(path))
        raise ExtractionUnavailable(fmt.value)

    def extract_sections(self, path: Path, fmt: Format) -> List[Section]:
        path = Path(path)
        with _codec_errors("extract sections from", path.name):
            if fmt == Format.PPTX:
                return self._pptx_sections(path)
            if fmt == Format.ODP:
                return self._odp_sections(path)
            if fmt == Format.EPUB:
                return self._epub_sections(path)
        raise ExtractionUnavailable(fmt.value)

    def _pdf_text(self, path: Path) -> str:
        pages = []
        with pdfplumber.open(str(path)) as pdf:
            for page in pdf.pages:
                pages.append(page.extract_text() or "")
        return "\n\n".join(pages).strip()

    def _docx_paragraphs(self, path: Path) -> List[str]:
        with zipfile.ZipFile(path) as archive:
            root = _read_xml(archive, "word/document.xml")
        paragraphs = []
        for paragraph in root.iter(f"{{{NS['w']}}}p"):
            parts = []
            for node in paragraph.iter():
                if node.tag == f"{{{NS['w']}}}t":
                    parts.append(node.text or "")
                elif node.tag == f"{{{NS['w']}}}tab":
                    parts.append("\t")
                elif node.tag in (f"{{{NS['w']}}}br", f"{{{NS['w']}}}cr"):
                    parts.append("\n")
            paragraphs.append("".join(parts))
        return paragraphs

    def _odt_paragraphs(self, path: Path) -> List[str]:
        with zipfile.ZipFile(path) as archive:
            root = _read_xml(archive, "content.xml")
        paragraphs = []
        for node in root.iter():
            if node.tag in (f"{{{NS['text']}}}p", f"{{{NS['text']}}}h"):
                paragraphs.append("".join(node.itertext()))
        return paragraphs

    def _pptx_sections(self, path: Path) -> List[Section]:
        with zipfile.ZipFile(path) as archive:
            slides = []
            for name in archive.namelist():
                match = _SLIDE_PART.match(name)
                if match:
                    slides.append((int(match.group(1)), name))
            sections = []
            for position, (_, name) in enumerate(sorted(slides), start=1):
                root = _read_xml(archive, name)
                lines = [
                    _paragraph_text(p, f"{{{NS['a']}}}t")
                    for p in root.iter(f"{{{NS['a']}}}p")
                ]
                sections.append(Section(title=f"Slide {position}", text="\n".join(line for line in lines if line)))
        return sections

    def _odp_sections(self, path: Path) -> List[Section]:
        with zipfile.ZipFile(path) as archive:
            root = _read_xml(archive, "content.xml")
        sections = []
        for position, page in enumerate(root.iter(f"{{{NS['draw']}}}page"), start=1):
            lines = ["".join(p.itertext()) for p in page.iter(f"{{{NS['text']}}}p")]
            title = page.get(f"{{{NS['draw']}}}name") or f"Slide {position}"
            sections.append(Section(title=title, text="\n".join(line for line in lines if line)))
        return sections

    def _epub_sections(self, path: Path) -> List[Section]:
        with zipfile.ZipFile(path) as archive:
            container = _read_xml(archive, "META-INF/container.xml")
            rootfile = container.find(".//container:rootfile", NS)
            if rootfile is None:
                raise CodecFailure(f"{path.name}: EPUB container has no rootfile")
            opf_path = rootfile.get("full-path", "")
            opf = _read_xml(archive, opf_path)
            base = posixpath.dirname(opf_path)
            manifest = {
                item.get("id"): item.get("href")
                for item in opf.iterfind(".//opf:manifest/opf:item", NS)
            }
            sections = []
            for itemref in opf.iterfind(".//opf:spine/opf:itemref", NS):
                href = manifest.get(itemref.get("idref"))
                if not href:
                    continue
                markup = archive.read(posixpath.join(base, href) if base else href).decode("utf-8", errors="replace")
                text = html_to_text(markup)
                if not text:
                    continue
                title = html_title(markup) or f"Chapter {len(sections) + 1}"
                sections.append(Section(title=title, text=text))
        return sections

    # ------------------------------------------------------------------
    # Raster images
    # ------------------------------------------------------------------

    def open_raster(self, path: Path) -> Image.Image:
        path = Path(path)
        try:
            with Image.open(path) as image:
                image.seek(0)
                image.load()
                return image.copy()
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            # Truncated or corrupt payloads surface as OSError from the decoder
            raise CodecFailure(f"Cannot decode image {path.name}: {e}") from e

    def encode_raster(self, image: Image.Image, fmt: Format, options: ConversionOptions) -> bytes:
        pil_format = _PIL_FORMATS.get(fmt)
        if pil_format is None:
            raise CodecFailure(f"No raster encoder for {fmt.value.upper()}")
        with _codec_errors("encode image as", fmt.value.upper()):
            image = self._resize(image, options)
            buffer = io.BytesIO()
            if pil_format == "JPEG":
                self._flatten(image).save(buffer, "JPEG", quality=options.quality or self._default_quality)
            elif pil_format == "PNG":
                compression = self._default_png_compression if options.compression is None else options.compression
                image.save(buffer, "PNG", compress_level=compression)
            elif pil_format == "WEBP":
                image.save(buffer, "WEBP", quality=options.quality or 80)
            elif pil_format == "TIFF":
                image.save(buffer, "TIFF", compression="tiff_lzw")
            elif pil_format == "BMP":
                if image.mode not in ("1", "L", "P", "RGB"):
                    image = self._flatten(image)
                image.save(buffer, "BMP")
            elif pil_format == "GIF":
                if image.mode not in ("P", "L"):
                    image = self._flatten(image).convert("P", palette=Image.Palette.ADAPTIVE)
                image.save(buffer, "GIF")
            else:
                self._flatten(image).save(buffer, "PDF", resolution=100.0)
            return buffer.getvalue()

    @staticmethod
    def _flatten(image: Image.Image) -> Image.Image:
        """RGB copy with transparency composited onto white"""
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[-1])
            return background
        if image.mode != "RGB":
            return image.convert("RGB")
        return image

    @staticmethod
    def _resize(image: Image.Image, options: ConversionOptions) -> Image.Image:
        if not options.wants_resize:
            return image
        width = options.width or image.width
        height = options.height or image.height
        if options.fit == ResizeFit.FILL:
            return image.resize((width, height))
        if options.fit == ResizeFit.COVER and options.width and options.height:
            return ImageOps.fit(image, (width, height))
        resized = image.copy()
        resized.thumbnail((width, height))
        return resized

    # ------------------------------------------------------------------
    # Tabular data
    # ------------------------------------------------------------------

    def parse_tabular(self, path: Path, fmt: Format) -> Table:
        path = Path(path)
        with _codec_errors("read spreadsheet", path.name):
            if fmt == Format.XLSX:
                return self._read_xlsx(path)
            if fmt == Format.CSV:
                frame = pd.read_csv(path, keep_default_na=False, na_values=[""])
                return self._table_from_frame(frame)
            if fmt in (Format.XLS, Format.ODS):
                # pandas picks xlrd / odfpy; a missing engine surfaces as ImportError
                frame = pd.read_excel(path, sheet_name=0)
                return self._table_from_frame(frame)
        raise CodecFailure(f"No spreadsheet reader for {fmt.value.upper()}")

    def _read_xlsx(self, path: Path) -> Table:
        workbook = load_workbook(path, read_only=True, data_only=True)
        try:
            sheet = workbook.worksheets[0]
            rows = [list(row) for row in sheet.iter_rows(values_only=True)]
            title = sheet.title
        finally:
            workbook.close()
        # Trailing empty rows are common in xlsx files
        while rows and all(cell is None for cell in rows[-1]):
            rows.pop()
        if not rows:
            return Table(columns=[], rows=[], sheet_name=title)
        header = [
            str(value) if value is not None else f"Column{i + 1}"
            for i, value in enumerate(rows[0])
        ]
        return Table(columns=header, rows=self._normalize_rows(rows[1:], len(header)), sheet_name=title)

    def _table_from_frame(self, frame: pd.DataFrame) -> Table:
        frame = frame.astype(object).where(pd.notna(frame), None)
        columns = [
            f"Column{i + 1}" if str(name).startswith("Unnamed:") else str(name)
            for i, name in enumerate(frame.columns)
        ]
        return Table(columns=columns, rows=self._normalize_rows(frame.values.tolist(), len(columns)))

    @staticmethod
    def _normalize_rows(rows: List[List[Any]], width: int) -> List[List[Any]]:
        return [(list(row) + [None] * width)[:width] for row in rows]

    def render_tabular(self, table: Table, fmt: Format) -> bytes:
        with _codec_errors("write spreadsheet as", fmt.value.upper()):
            if fmt == Format.XLSX:
                return self._write_xlsx(table)
            frame = pd.DataFrame(self._normalize_rows(table.rows, len(table.columns)), columns=table.columns)
            if fmt == Format.CSV:
                return frame.to_csv(index=False).encode("utf-8")
            if fmt == Format.TXT:
                return frame.to_csv(index=False, sep="\t").encode("utf-8")
            if fmt == Format.JSON:
                return json.dumps(table.records(), indent=2, ensure_ascii=False, default=str).encode("utf-8")
            if fmt in (Format.HTML, Format.PDF):
                markup = wrap_html(
                    table.sheet_name,
                    f"    <h1>{escape_html(table.sheet_name)}</h1>\n"
                    + frame.to_html(index=False, na_rep="", border=0),
                    style=_TABLE_STYLE,
                )
                if fmt == Format.HTML:
                    return markup.encode("utf-8")
                return self._html_to_pdf(markup)
        raise CodecFailure(f"No spreadsheet writer for {fmt.value.upper()}")

    def _write_xlsx(self, table: Table) -> bytes:
        wb = Workbook()
        ws = wb.active
        ws.title = (table.sheet_name or "Sheet1")[:31]
        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        header_font = Font(bold=True, color="FFFFFF")
        if table.columns:
            ws.append(table.columns)
            for cell in ws[1]:
                cell.fill = header_fill
                cell.font = header_font
                cell.alignment = Alignment(horizontal="center")
        for row in table.rows:
            ws.append(row)
        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Document containers
    # ------------------------------------------------------------------

    def render_document(self, content: DocumentContent, fmt: Format) -> bytes:
        with _codec_errors("render document as", fmt.value.upper()):
            if fmt == Format.PDF:
                return self._html_to_pdf(content.html or text_to_html(content.title, content.paragraphs))
            if fmt == Format.DOCX:
                return self._write_docx(content.paragraphs)
            if fmt == Format.ODT:
                return self._write_odt(content.paragraphs)
        raise CodecFailure(f"No document renderer for {fmt.value.upper()}")

    @staticmethod
    def _html_to_pdf(markup: str) -> bytes:
        # Imported lazily: WeasyPrint loads native Pango libraries on import
        from weasyprint import HTML

        return HTML(string=markup, url_fetcher=local_url_fetcher).write_pdf()

    @staticmethod
    def _write_docx(paragraphs: List[str]) -> bytes:
        body = "".join(
            f'<w:p><w:r><w:t xml:space="preserve">{_xml_text(line)}</w:t></w:r></w:p>'
            for line in paragraphs
        )
        document = (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            f'<w:document xmlns:w="{NS["w"]}"><w:body>{body}<w:sectPr/></w:body></w:document>'
        )
        content_types = (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
            '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
            '<Default Extension="xml" ContentType="application/xml"/>'
            '<Override PartName="/word/document.xml" '
            'ContentType="application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"/>'
            "</Types>"
        )
        rels = (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
            '<Relationship Id="rId1" '
            'Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" '
            'Target="word/document.xml"/>'
            "</Relationships>"
        )
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            archive.writestr("[Content_Types].xml", content_types)
            archive.writestr("_rels/.rels", rels)
            archive.writestr("word/document.xml", document)
        return buffer.getvalue()

    @staticmethod
    def _write_odt(paragraphs: List[str]) -> bytes:
        body = "".join(f"<text:p>{_xml_text(line)}</text:p>" for line in paragraphs)
        content = (
            '<?xml version="1.0" encoding="UTF-8"?>'
            f'<office:document-content xmlns:office="{NS["office"]}" xmlns:text="{NS["text"]}" '
            'office:version="1.2">'
            f"<office:body><office:text>{body}</office:text></office:body>"
            "</office:document-content>"
        )
        manifest = (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<manifest:manifest xmlns:manifest="urn:oasis:names:tc:opendocument:xmlns:manifest:1.0" '
            'manifest:version="1.2">'
            '<manifest:file-entry manifest:full-path="/" '
            'manifest:media-type="application/vnd.oasis.opendocument.text"/>'
            '<manifest:file-entry manifest:full-path="content.xml" manifest:media-type="text/xml"/>'
            "</manifest:manifest>"
        )
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            # ODF requires the mimetype entry first and uncompressed
            archive.writestr(
                zipfile.ZipInfo("mimetype"),
                "application/vnd.oasis.opendocument.text",
                compress_type=zipfile.ZIP_STORED,
            )
            archive.writestr("META-INF/manifest.xml", manifest)
            archive.writestr("content.xml", content)
        return buffer.getvalue()
