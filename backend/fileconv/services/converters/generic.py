"""
Generic fallback converter
Used when a category has no bespoke rule for a txt/html/pdf target: content
is passed through and wrapped with a description of the source file.
"""
import base64
from typing import FrozenSet, List, Optional

from fileconv.models.formats import Category, Format
from fileconv.services.codec_provider import CodecProvider, DocumentContent
from fileconv.services.converters.base import BaseConverter, ConversionContext, FormatPair
from fileconv.services.format_registry import FALLBACK_TARGETS, FormatRegistry
from fileconv.services.text_markup import escape_html, split_paragraphs, wrap_html


class GenericConverter(BaseConverter):
    """Lossy pass-through into one of the fallback targets"""

    def __init__(self, category: Category, codec: CodecProvider, registry: FormatRegistry, scratch_dir=None):
        super().__init__(codec, scratch_dir)
        self.category = category
        self._registry = registry
        sources = registry.capability(category).extensions
        self._pairs = frozenset((s, t) for s in sources for t in FALLBACK_TARGETS)

    @property
    def name(self) -> str:
        return f"GenericConverter[{self.category.value}]"

    def pairs(self) -> FrozenSet[FormatPair]:
        return self._pairs

    def _convert(self, ctx: ConversionContext):
        data = ctx.input_path.read_bytes()
        text = self._as_text(data)
        description = self._describe(ctx, len(data))

        if ctx.target == Format.TXT:
            if text is not None:
                return text
            return "\n".join(description + ["", "Binary content is not representable as text."]) + "\n"

        markup = self._to_html(ctx, data, text, description)
        if ctx.target == Format.HTML:
            return markup
        paragraphs = description + [""] + (split_paragraphs(text) if text is not None else [])
        return self._codec.render_document(
            DocumentContent(title=ctx.display_name, paragraphs=paragraphs, html=markup), Format.PDF
        )

    def _describe(self, ctx: ConversionContext, size: int) -> List[str]:
        return [
            f"File: {ctx.display_name}",
            f"Original format: {ctx.source.value.upper()}",
            f"Category: {self.category.value}",
            f"Size: {size} bytes",
        ]

    def _to_html(self, ctx: ConversionContext, data: bytes, text: Optional[str], description: List[str]) -> str:
        header = "\n".join(f"        <li>{escape_html(line)}</li>" for line in description)
        if text is not None:
            content = f"    <pre>{escape_html(text)}</pre>"
        else:
            mime = self._registry.mime_type(ctx.source)
            uri = f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
            if self.category == Category.IMAGE:
                content = f'    <img src="{uri}" alt="{escape_html(ctx.display_name)}" style="max-width: 100%;">'
            else:
                content = (
                    f'    <p><a download="{escape_html(ctx.display_name)}" href="{uri}">'
                    "Embedded original file</a></p>"
                )
        body = (
            f"    <h1>{escape_html(ctx.display_name)}</h1>\n"
            f"    <ul>\n{header}\n    </ul>\n"
            f"{content}"
        )
        return wrap_html(ctx.display_name, body)

    @staticmethod
    def _as_text(data: bytes) -> Optional[str]:
        """UTF-8 text, or None for binary payloads"""
        if b"\x00" in data:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return None
