"""
Tests for the category converters
Runs the real local codecs, with only HTML -> PDF rendering stubbed
"""
import csv
import io
import json
import shutil
import tempfile
import zipfile
from pathlib import Path

import pytest
from openpyxl import load_workbook
from PIL import Image

from fileconv.core.errors import CodecFailure, UnsupportedConversion
from fileconv.models.conversion import ConversionOptions, ResizeFit
from fileconv.models.formats import Category, Format
from fileconv.services.converters.document import DocumentConverter
from fileconv.services.converters.generic import GenericConverter
from fileconv.services.converters.image import ImageConverter
from fileconv.services.converters.sectioned import EbookConverter, PresentationConverter
from fileconv.services.converters.spreadsheet import SpreadsheetConverter
from fileconv.services.format_registry import format_registry
from fileconv.services.local_codecs import LocalCodecProvider, local_url_fetcher

from conftest import FAKE_PDF_HEADER, FakePdfCodecProvider, write_epub, write_png, write_pptx, write_xlsx


class ConverterTestBase:
    def setup_method(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.scratch_dir = self.test_dir / "tmp"
        self.codec = FakePdfCodecProvider()

    def teardown_method(self):
        if self.test_dir.exists():
            shutil.rmtree(self.test_dir)

    def write_text(self, name: str, content: str) -> Path:
        path = self.test_dir / name
        path.write_text(content, encoding="utf-8")
        return path

    def assert_scratch_empty(self):
        leftovers = list(self.scratch_dir.iterdir()) if self.scratch_dir.exists() else []
        assert leftovers == [], f"Intermediate files left behind: {leftovers}"


class TestDocumentConverter(ConverterTestBase):
    """Document conversions"""

    def setup_method(self):
        super().setup_method()
        self.converter = DocumentConverter(self.codec, self.scratch_dir)

    def test_txt_to_html(self):
        """Test text is escaped and wrapped in a document"""
        source = self.write_text("notes.txt", "First line\nA <b> & C")
        result = self.converter.convert(source, "html")

        assert result.output_path == self.test_dir / "notes_converted.html"
        markup = result.output_path.read_text(encoding="utf-8")
        assert "<h1>notes.txt</h1>" in markup
        assert "<p>First line</p>" in markup
        assert "A &lt;b&gt; &amp; C" in markup
        assert result.output_size_bytes == result.output_path.stat().st_size

    def test_txt_to_pdf(self):
        """Test PDF output goes through the HTML renderer"""
        source = self.write_text("notes.txt", "Hello PDF")
        result = self.converter.convert(source, "pdf", output_path=self.test_dir / "out.pdf")

        assert result.output_path.read_bytes().startswith(FAKE_PDF_HEADER)
        assert "Hello PDF" in self.codec.rendered_html[-1]
        self.assert_scratch_empty()

    def test_html_to_txt_drops_markup(self):
        """Test visible text extraction from HTML"""
        source = self.write_text(
            "page.html",
            "<html><head><title>T</title><style>p {color: red}</style></head>"
            "<body><h1>Heading</h1><p>Body text</p><script>alert(1)</script></body></html>",
        )
        text = self.converter.convert(source, "txt").output_path.read_text(encoding="utf-8")
        assert text == "Heading\nBody text"

    def test_rtf_to_txt(self):
        """Test RTF control words and font tables are stripped"""
        source = self.write_text(
            "letter.rtf", r"{\rtf1\ansi{\fonttbl{\f0 Times;}}\f0 Hello \b World\b0\par Second line}"
        )
        text = self.converter.convert(source, "txt").output_path.read_text(encoding="utf-8")
        assert text == "Hello World\nSecond line"

    def test_txt_to_docx_is_readable(self):
        """Test generated DOCX carries the paragraphs"""
        source = self.write_text("notes.txt", "Alpha\nBeta")
        result = self.converter.convert(source, "docx")

        assert zipfile.is_zipfile(result.output_path)
        assert LocalCodecProvider().extract_text(result.output_path, Format.DOCX) == "Alpha\nBeta"

    def test_txt_to_odt_has_mimetype_first(self):
        """Test ODF packages start with the stored mimetype entry"""
        source = self.write_text("notes.txt", "Alpha")
        result = self.converter.convert(source, "odt")

        with zipfile.ZipFile(result.output_path) as archive:
            first = archive.infolist()[0]
            assert first.filename == "mimetype"
            assert first.compress_type == zipfile.ZIP_STORED
        assert LocalCodecProvider().extract_text(result.output_path, Format.ODT) == "Alpha"

    def test_doc_target_is_rtf(self):
        """Test legacy .doc output is written as RTF"""
        source = self.write_text("notes.txt", "Alpha")
        content = self.converter.convert(source, "doc").output_path.read_text(encoding="utf-8")
        assert content.startswith("{\\rtf1")
        assert "Alpha" in content

    def test_doc_source_yields_placeholder(self):
        """Test unavailable extraction produces a labelled placeholder"""
        source = self.test_dir / "legacy.doc"
        source.write_bytes(b"\xd0\xcf\x11\xe0 legacy binary")
        text = self.converter.convert(source, "txt").output_path.read_text(encoding="utf-8")

        assert text.startswith("[Placeholder] Extracted text from legacy.doc")
        assert "No text extraction available for DOC files" in text

    def test_doc_source_fails_hard_when_configured(self):
        """Test fail-hard mode turns unavailable extraction into a failure"""
        converter = DocumentConverter(self.codec, self.scratch_dir, fail_soft=False)
        source = self.test_dir / "legacy.doc"
        source.write_bytes(b"\xd0\xcf\x11\xe0 legacy binary")

        with pytest.raises(CodecFailure):
            converter.convert(source, "txt")
        assert not (self.test_dir / "legacy_converted.txt").exists()

    def test_corrupt_docx_fails_without_output(self):
        """Test corrupt input fails and leaves no partial output"""
        source = self.test_dir / "broken.docx"
        source.write_bytes(b"this is not a zip file")

        with pytest.raises(CodecFailure):
            self.converter.convert(source, "txt")
        assert not (self.test_dir / "broken_converted.txt").exists()
        self.assert_scratch_empty()

    def test_display_name_used_as_title(self):
        """Test the caller's filename labels the output"""
        source = self.write_text("3f2a.txt", "Body")
        result = self.converter.convert(source, "html", display_name="Quarterly report.txt")
        assert "<title>Quarterly report.txt</title>" in result.output_path.read_text(encoding="utf-8")

    def test_unsupported_target(self):
        """Test a document cannot become a spreadsheet"""
        source = self.write_text("notes.txt", "Body")
        with pytest.raises(UnsupportedConversion):
            self.converter.convert(source, "xlsx")


class TestImageConverter(ConverterTestBase):
    """Image conversions"""

    def setup_method(self):
        super().setup_method()
        self.converter = ImageConverter(self.codec, self.scratch_dir)
        self.png = write_png(self.test_dir / "photo.png", size=(40, 30))

    def test_png_to_jpg(self):
        """Test re-encoding to JPEG"""
        result = self.converter.convert(self.png, "jpg")
        with Image.open(result.output_path) as image:
            assert image.format == "JPEG"
            assert image.size == (40, 30)

    def test_transparent_png_to_jpg(self):
        """Test transparency is flattened for JPEG"""
        source = write_png(self.test_dir / "alpha.png", mode="RGBA")
        result = self.converter.convert(source, "jpeg", ConversionOptions(quality=50))
        with Image.open(result.output_path) as image:
            assert image.mode == "RGB"

    @pytest.mark.parametrize("target,pil_format", [("bmp", "BMP"), ("gif", "GIF")])
    def test_two_step_targets(self, target, pil_format):
        """Test BMP/GIF go through a PNG intermediate that is cleaned up"""
        result = self.converter.convert(self.png, target)
        with Image.open(result.output_path) as image:
            assert image.format == pil_format
            assert image.size == (40, 30)
        self.assert_scratch_empty()

    def test_resize_inside_keeps_aspect_ratio(self):
        """Test default fit never exceeds the box"""
        result = self.converter.convert(self.png, "png", ConversionOptions(width=20), self.test_dir / "small.png")
        with Image.open(result.output_path) as image:
            assert image.size == (20, 15)

    def test_resize_fill_and_two_step(self):
        """Test exact resize survives the intermediate step"""
        options = ConversionOptions(width=10, height=10, fit=ResizeFit.FILL)
        result = self.converter.convert(self.png, "bmp", options)
        with Image.open(result.output_path) as image:
            assert image.size == (10, 10)

    def test_png_to_webp_and_tiff(self):
        """Test the remaining encoders"""
        for target, pil_format in (("webp", "WEBP"), ("tiff", "TIFF")):
            result = self.converter.convert(self.png, target)
            with Image.open(result.output_path) as image:
                assert image.format == pil_format

    def test_png_to_pdf(self):
        """Test the single-page raster PDF rule"""
        result = self.converter.convert(self.png, "pdf")
        assert result.output_path.read_bytes().startswith(b"%PDF")

    def test_corrupt_image(self):
        """Test undecodable images fail without output"""
        source = self.test_dir / "broken.png"
        source.write_bytes(b"\x89PNG\r\n\x1a\n garbage")
        with pytest.raises(CodecFailure):
            self.converter.convert(source, "jpg")
        assert not (self.test_dir / "broken_converted.jpg").exists()

    def test_image_to_docx_unsupported(self):
        """Test images cannot become word documents"""
        with pytest.raises(UnsupportedConversion):
            self.converter.convert(self.png, "docx")


class TestSpreadsheetConverter(ConverterTestBase):
    """Spreadsheet conversions"""

    def setup_method(self):
        super().setup_method()
        self.converter = SpreadsheetConverter(self.codec, self.scratch_dir)
        self.xlsx = write_xlsx(self.test_dir / "sales.xlsx", [["Region", "Total"], ["North", 10], ["South", 7]])
        self.csv = self.write_text("sales.csv", "Region,Total\nNorth,10\nSouth,7\n")

    def test_xlsx_to_csv(self):
        """Test the first sheet is exported as CSV"""
        text = self.converter.convert(self.xlsx, "csv").output_path.read_text(encoding="utf-8")
        rows = list(csv.reader(io.StringIO(text)))
        assert rows == [["Region", "Total"], ["North", "10"], ["South", "7"]]

    def test_csv_to_json_records(self):
        """Test rows become records keyed by header"""
        data = json.loads(self.converter.convert(self.csv, "json").output_path.read_text(encoding="utf-8"))
        assert data == [{"Region": "North", "Total": 10}, {"Region": "South", "Total": 7}]

    def test_csv_to_xlsx_styled_header(self):
        """Test the header row is styled"""
        result = self.converter.convert(self.csv, "xlsx")
        wb = load_workbook(result.output_path)
        ws = wb.active
        assert [cell.value for cell in ws[1]] == ["Region", "Total"]
        assert ws["A1"].font.bold
        assert ws["A1"].fill.start_color.rgb.endswith("366092")
        assert ws["A2"].value == "North"
        wb.close()

    def test_xlsx_to_txt_is_tab_separated(self):
        """Test the text rule"""
        text = self.converter.convert(self.xlsx, "txt").output_path.read_text(encoding="utf-8")
        assert text.splitlines()[0] == "Region\tTotal"

    def test_csv_to_html_and_pdf(self):
        """Test tabular HTML and its PDF rendering"""
        markup = self.converter.convert(self.csv, "html").output_path.read_text(encoding="utf-8")
        assert "<table" in markup
        assert "<h1>sales.csv</h1>" in markup

        result = self.converter.convert(self.csv, "pdf")
        assert result.output_path.read_bytes().startswith(FAKE_PDF_HEADER)

    def test_corrupt_xlsx(self):
        """Test unreadable workbooks fail"""
        source = self.test_dir / "broken.xlsx"
        source.write_bytes(b"not a workbook")
        with pytest.raises(CodecFailure):
            self.converter.convert(source, "csv")


class TestSectionedConverters(ConverterTestBase):
    """Presentation and e-book conversions"""

    def test_pptx_to_txt_per_slide(self):
        """Test slide text is extracted in order"""
        source = write_pptx(self.test_dir / "deck.pptx", [["Intro", "Welcome"], ["Results"]])
        text = PresentationConverter(self.codec).convert(source, "txt").output_path.read_text(encoding="utf-8")

        assert text.startswith("Presentation: deck.pptx")
        assert "Slide 1:\nIntro\nWelcome" in text
        assert "Slide 2:\nResults" in text
        assert text.index("Slide 1:") < text.index("Slide 2:")
        assert "Original format: PPTX" in text

    def test_ppt_to_txt_synthesizes_section(self):
        """Test formats without a reader get one notional slide"""
        source = self.test_dir / "old.ppt"
        source.write_bytes(b"\xd0\xcf\x11\xe0 binary")
        text = PresentationConverter(self.codec).convert(source, "txt").output_path.read_text(encoding="utf-8")

        assert "Slide 1:" in text
        assert "This presentation has been converted from PPT format." in text

    def test_pptx_to_pdf(self):
        """Test PDF rendering of slides"""
        source = write_pptx(self.test_dir / "deck.pptx", [["Intro"]])
        result = PresentationConverter(self.codec).convert(source, "pdf")
        assert result.output_path.read_bytes().startswith(FAKE_PDF_HEADER)
        assert "Intro" in self.codec.rendered_html[-1]

    def test_corrupt_pptx(self):
        """Test a broken container fails the conversion"""
        source = self.test_dir / "broken.pptx"
        source.write_bytes(b"not a zip")
        with pytest.raises(CodecFailure):
            PresentationConverter(self.codec).convert(source, "txt")

    def test_epub_to_html_per_chapter(self):
        """Test chapters are extracted from the spine"""
        source = write_epub(self.test_dir / "book.epub", [("Chapter One", "It was dark."), ("Epilogue", "The end.")])
        markup = EbookConverter(self.codec).convert(source, "html").output_path.read_text(encoding="utf-8")

        assert "<h1>E-book: book.epub</h1>" in markup
        assert "<h2>Chapter One</h2>" in markup
        assert "It was dark." in markup
        assert markup.index("Chapter One") < markup.index("Epilogue")

    def test_mobi_to_txt_synthesizes_section(self):
        """Test e-books without a reader get one notional chapter"""
        source = self.test_dir / "novel.mobi"
        source.write_bytes(b"BOOKMOBI")
        text = EbookConverter(self.codec).convert(source, "txt").output_path.read_text(encoding="utf-8")
        assert "Chapter 1:" in text
        assert "This e-book has been converted from MOBI format." in text

    def test_no_same_category_targets(self):
        """Test sectioned sources only reach text-like targets"""
        source = write_pptx(self.test_dir / "deck.pptx", [["Intro"]])
        with pytest.raises(UnsupportedConversion):
            PresentationConverter(self.codec).convert(source, "odp")


class TestGenericConverter(ConverterTestBase):
    """Fallback pass-through"""

    def test_binary_image_to_txt_describes_file(self):
        """Test binary content is described in text output"""
        converter = GenericConverter(Category.IMAGE, self.codec, format_registry)
        png = write_png(self.test_dir / "photo.png")
        text = converter.convert(png, "txt").output_path.read_text(encoding="utf-8")

        assert "File: photo.png" in text
        assert "Original format: PNG" in text
        assert "Category: image" in text

    def test_binary_image_to_html_embeds_data_uri(self):
        """Test images are embedded inline in HTML"""
        converter = GenericConverter(Category.IMAGE, self.codec, format_registry)
        png = write_png(self.test_dir / "photo.png")
        markup = converter.convert(png, "html").output_path.read_text(encoding="utf-8")
        assert '<img src="data:image/png;base64,' in markup

    def test_text_content_passes_through(self):
        """Test textual sources are embedded verbatim"""
        converter = GenericConverter(Category.DOCUMENT, self.codec, format_registry)
        source = self.write_text("notes.txt", "plain <content>")

        assert converter.convert(source, "txt").output_path.read_text(encoding="utf-8") == "plain <content>"
        result = converter.convert(source, "pdf")
        assert result.output_path.read_bytes().startswith(FAKE_PDF_HEADER)
        assert "<pre>plain &lt;content&gt;</pre>" in self.codec.rendered_html[-1]

    def test_only_fallback_targets(self):
        """Test the generic converter never claims same-category pairs"""
        converter = GenericConverter(Category.IMAGE, self.codec, format_registry)
        assert converter.supports(Format.PNG, Format.TXT)
        assert not converter.supports(Format.PNG, Format.JPG)


class TestPdfResourceFetching:
    """Markup handed to the PDF renderer cannot pull in outside resources"""

    @pytest.mark.parametrize("url", [
        "file:///etc/passwd",
        "FILE:///etc/hosts",
        "http://169.254.169.254/latest/meta-data/",
        "https://example.com/logo.png",
        "/etc/passwd",
    ])
    def test_external_urls_are_refused(self, url):
        with pytest.raises(ValueError):
            local_url_fetcher(url)
