"""
Presentation and e-book converters
Both reduce their source to an ordered list of sections (slides or chapters)
and only produce text-like targets.
"""
import logging
from typing import FrozenSet, List, Tuple

from fileconv.core.errors import ExtractionUnavailable
from fileconv.models.formats import Category, Format
from fileconv.services.codec_provider import DocumentContent, Section
from fileconv.services.converters.base import BaseConverter, ConversionContext, FormatPair
from fileconv.services.text_markup import escape_html, wrap_html

logger = logging.getLogger(__name__)

TEXT_TARGETS = (Format.TXT, Format.HTML, Format.PDF)

_SECTION_STYLE = """
        body { font-family: Arial, sans-serif; margin: 40px; color: #333; }
        .section { border: 1px solid #ddd; margin: 20px 0; padding: 20px; border-radius: 5px; }
        .section h2 { color: #366092; margin-top: 0; }
        .section p { white-space: pre-wrap; }
        .note { color: #888; font-size: 0.9em; }
"""


class SectionedConverter(BaseConverter):
    """Shared rules for slide/chapter based sources"""

    sources: Tuple[Format, ...] = ()
    kind = "Document"
    section_label = "Section"

    def pairs(self) -> FrozenSet[FormatPair]:
        return frozenset((s, t) for s in self.sources for t in TEXT_TARGETS)

    def _convert(self, ctx: ConversionContext):
        sections = self._sections(ctx)
        title = f"{self.kind}: {ctx.display_name}"
        if ctx.target == Format.TXT:
            return self._to_text(title, sections, ctx.source)
        markup = self._to_html(title, sections, ctx.source)
        if ctx.target == Format.HTML:
            return markup
        paragraphs = [title, ""]
        for section in sections:
            paragraphs.extend([section.title, section.text, ""])
        return self._codec.render_document(
            DocumentContent(title=title, paragraphs=paragraphs, html=markup), Format.PDF
        )

    def _sections(self, ctx: ConversionContext) -> List[Section]:
        try:
            sections = self._codec.extract_sections(ctx.input_path, ctx.source)
        except ExtractionUnavailable:
            logger.info(f"No {ctx.source.value.upper()} reader; synthesizing a single {self.section_label.lower()}")
            sections = []
        if sections:
            return sections
        return [
            Section(
                title=f"{self.section_label} 1",
                text=f"This {self.kind.lower()} has been converted from {ctx.source.value.upper()} format.",
            )
        ]

    def _to_text(self, title: str, sections: List[Section], source: Format) -> str:
        lines = [title, ""]
        for section in sections:
            lines.append(f"{section.title}:")
            lines.append(section.text)
            lines.append("")
        lines.append(f"Original format: {source.value.upper()}")
        return "\n".join(lines) + "\n"

    def _to_html(self, title: str, sections: List[Section], source: Format) -> str:
        blocks = [f"    <h1>{escape_html(title)}</h1>"]
        for section in sections:
            blocks.append(
                '    <div class="section">\n'
                f"        <h2>{escape_html(section.title)}</h2>\n"
                f"        <p>{escape_html(section.text)}</p>\n"
                "    </div>"
            )
        blocks.append(f'    <p class="note">Original format: {source.value.upper()}</p>')
        return wrap_html(title, "\n".join(blocks), style=_SECTION_STYLE)


class PresentationConverter(SectionedConverter):
    category = Category.PRESENTATION
    sources = (Format.PPTX, Format.PPT, Format.ODP)
    kind = "Presentation"
    section_label = "Slide"


class EbookConverter(SectionedConverter):
    category = Category.EBOOK
    sources = (Format.EPUB, Format.MOBI, Format.AZW)
    kind = "E-book"
    section_label = "Chapter"
