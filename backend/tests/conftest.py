"""
Shared fixtures for the conversion service tests
"""
import asyncio
import io
import time
import zipfile
from pathlib import Path
from typing import List, Sequence, Tuple

import pytest
from openpyxl import Workbook
from PIL import Image

from fileconv.core.config import Settings
from fileconv.services.conversion_service import ConversionService
from fileconv.services.local_codecs import LocalCodecProvider

FAKE_PDF_HEADER = b"%PDF-1.4\n"


class FakePdfCodecProvider(LocalCodecProvider):
    """Local codecs with HTML -> PDF rendering stubbed out (WeasyPrint needs native Pango)"""

    def __init__(self):
        super().__init__()
        self.rendered_html: List[str] = []

    def _html_to_pdf(self, markup: str) -> bytes:
        self.rendered_html.append(markup)
        return FAKE_PDF_HEADER + markup.encode("utf-8") + b"\n%%EOF\n"


class BytesUpload:
    """Async upload stand-in with UploadFile.read semantics"""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


def write_png(path: Path, size=(40, 30), color=(200, 30, 30), mode="RGB") -> Path:
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    Image.new(mode, size, color).save(path, "PNG")
    return path


def write_xlsx(path: Path, rows: Sequence[Sequence]) -> Path:
    wb = Workbook()
    ws = wb.active
    ws.title = "Data"
    for row in rows:
        ws.append(list(row))
    wb.save(path)
    return path


def write_pptx(path: Path, slides: Sequence[Sequence[str]]) -> Path:
    """Minimal pptx package: one slide part per entry, one paragraph per line"""
    ns = (
        'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main" '
        'xmlns:p="http://schemas.openxmlformats.org/presentationml/2006/main"'
    )
    with zipfile.ZipFile(path, "w") as archive:
        for number, lines in enumerate(slides, start=1):
            paragraphs = "".join(f"<a:p><a:r><a:t>{line}</a:t></a:r></a:p>" for line in lines)
            archive.writestr(
                f"ppt/slides/slide{number}.xml",
                f"<p:sld {ns}><p:cSld><p:spTree><p:sp><p:txBody>{paragraphs}"
                "</p:txBody></p:sp></p:spTree></p:cSld></p:sld>",
            )
    return path


def write_epub(path: Path, chapters: Sequence[Tuple[str, str]]) -> Path:
    """Minimal EPUB 2 package with one XHTML file per (title, body) chapter"""
    items = "".join(
        f'<item id="c{i}" href="ch{i}.xhtml" media-type="application/xhtml+xml"/>'
        for i in range(len(chapters))
    )
    spine = "".join(f'<itemref idref="c{i}"/>' for i in range(len(chapters)))
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("mimetype", "application/epub+zip")
        archive.writestr(
            "META-INF/container.xml",
            '<container xmlns="urn:oasis:names:tc:opendocument:xmlns:container" version="1.0">'
            '<rootfiles><rootfile full-path="OEBPS/content.opf" '
            'media-type="application/oebps-package+xml"/></rootfiles></container>',
        )
        archive.writestr(
            "OEBPS/content.opf",
            '<package xmlns="http://www.idpf.org/2007/opf" version="2.0">'
            f"<manifest>{items}</manifest><spine>{spine}</spine></package>",
        )
        for i, (title, body) in enumerate(chapters):
            archive.writestr(
                f"OEBPS/ch{i}.xhtml",
                f"<html><head><title>{title}</title></head><body><p>{body}</p></body></html>",
            )
    return path


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll a condition from synchronous test code"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


async def async_wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        STORAGE_DIR=str(tmp_path / "storage"),
        MAX_UPLOAD_SIZE_MB=1,
        MAX_BATCH_FILES=3,
        MAX_CONCURRENT_JOBS=2,
        MAX_QUEUED_JOBS=10,
        JOB_TIMEOUT_SECONDS=30,
        CODEC_MAX_RETRIES=2,
        CODEC_RETRY_BACKOFF_SECONDS=0.01,
        DOWNLOAD_CLEANUP_DELAY_SECONDS=0.05,
        CLEANUP_INTERVAL_SECONDS=0,
    )


@pytest.fixture
def fake_codec() -> FakePdfCodecProvider:
    return FakePdfCodecProvider()


@pytest.fixture
def service(test_settings, fake_codec) -> ConversionService:
    return ConversionService(test_settings, codec=fake_codec)
