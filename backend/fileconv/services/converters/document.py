"""
Document converter
Sources are normalized to plain text (plus the original markup for HTML)
and re-rendered into the target format.
"""
import logging
from typing import FrozenSet, Optional, Union

from fileconv.core.errors import CodecFailure, ExtractionUnavailable
from fileconv.models.formats import Category, Format
from fileconv.services.codec_provider import CodecProvider, DocumentContent
from fileconv.services.converters.base import BaseConverter, ConversionContext, FormatPair
from fileconv.services.text_markup import (
    html_title,
    html_to_text,
    rtf_to_text,
    split_paragraphs,
    text_to_html,
    text_to_rtf,
)

logger = logging.getLogger(__name__)

DOCUMENT_FORMATS = (
    Format.DOC, Format.DOCX, Format.PDF, Format.TXT, Format.RTF, Format.ODT, Format.HTML,
)


class DocumentConverter(BaseConverter):
    """Word-processor, PDF, RTF, HTML and plain-text conversions"""

    category = Category.DOCUMENT

    def __init__(self, codec: CodecProvider, scratch_dir=None, *, fail_soft: bool = True):
        super().__init__(codec, scratch_dir)
        self._fail_soft = fail_soft
        self._pairs = frozenset((s, t) for s in DOCUMENT_FORMATS for t in DOCUMENT_FORMATS)

    def pairs(self) -> FrozenSet[FormatPair]:
        return self._pairs

    def _convert(self, ctx: ConversionContext) -> Union[bytes, str]:
        content = self._load(ctx)
        target = ctx.target
        if target == Format.TXT:
            return content.text
        if target == Format.HTML:
            return content.html or text_to_html(content.title, content.paragraphs)
        if target in (Format.RTF, Format.DOC):
            # Legacy .doc output is written as RTF, which word processors open as a Word document
            return text_to_rtf(content.paragraphs)
        return self._codec.render_document(content, target)

    def _load(self, ctx: ConversionContext) -> DocumentContent:
        path, source = ctx.input_path, ctx.source
        if source == Format.TXT:
            text = path.read_text(encoding="utf-8", errors="replace")
            return DocumentContent(title=ctx.display_name, paragraphs=split_paragraphs(text))
        if source == Format.HTML:
            markup = path.read_text(encoding="utf-8", errors="replace")
            return DocumentContent(
                title=html_title(markup) or ctx.display_name,
                paragraphs=split_paragraphs(html_to_text(markup)),
                html=markup,
            )
        if source == Format.RTF:
            text = rtf_to_text(path.read_text(encoding="latin-1"))
            return DocumentContent(title=ctx.display_name, paragraphs=split_paragraphs(text))

        try:
            text = self._codec.extract_text(path, source)
        except ExtractionUnavailable as e:
            if not self._fail_soft:
                raise CodecFailure(str(e)) from e
            logger.warning(f"{e.message}; emitting placeholder for {ctx.display_name}")
            return self._placeholder(ctx, e.message)
        return DocumentContent(title=ctx.display_name, paragraphs=split_paragraphs(text))

    @staticmethod
    def _placeholder(ctx: ConversionContext, reason: Optional[str]) -> DocumentContent:
        return DocumentContent(
            title=f"[Placeholder] {ctx.display_name}",
            paragraphs=[
                f"[Placeholder] Extracted text from {ctx.display_name}",
                "",
                f"{reason}.",
                f"The original {ctx.source.value.upper()} content could not be converted; "
                "this document only records that the file was received.",
            ],
        )
