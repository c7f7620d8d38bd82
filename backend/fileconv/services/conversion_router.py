"""
Conversion router
Selects the converter strategy for a (source, target) pair
"""
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union

from fileconv.core.errors import UnsupportedConversion
from fileconv.models.formats import Category, Format, format_token
from fileconv.services.codec_provider import CodecProvider
from fileconv.services.converters.base import BaseConverter
from fileconv.services.converters.document import DocumentConverter
from fileconv.services.converters.generic import GenericConverter
from fileconv.services.converters.image import ImageConverter
from fileconv.services.converters.sectioned import EbookConverter, PresentationConverter
from fileconv.services.converters.spreadsheet import SpreadsheetConverter
from fileconv.services.format_registry import FormatRegistry, format_registry

logger = logging.getLogger(__name__)


class ConversionRouter:
    """Dispatch table keyed by (source, target) format pairs.

    Lookup order: the category converter that has a bespoke rule for the pair,
    then the source category's generic converter when the registry allows the
    fallback target. Anything else raises UnsupportedConversion.
    """

    def __init__(
        self,
        registry: FormatRegistry,
        converters: Iterable[BaseConverter],
        generic: Dict[Category, BaseConverter],
    ):
        self._registry = registry
        self._generic = dict(generic)
        self._table: Dict[Tuple[Format, Format], BaseConverter] = {}
        for converter in converters:
            for pair in converter.pairs():
                if not registry.is_supported(*pair):
                    continue
                # First registered converter wins
                self._table.setdefault(pair, converter)
        logger.info(f"Conversion router ready: {len(self._table)} specific pairs")

    def route(self, source: Union[str, Format, None], target: Union[str, Format, None]) -> BaseConverter:
        source_fmt = Format.parse(source)
        target_fmt = Format.parse(target)
        if source_fmt is None or target_fmt is None or not self._registry.is_supported(source_fmt, target_fmt):
            raise UnsupportedConversion(format_token(source), format_token(target))

        converter = self._table.get((source_fmt, target_fmt))
        if converter is not None:
            return converter

        category = self._registry.category_of(source_fmt)
        fallback = self._generic.get(category)
        if fallback is None or not fallback.supports(source_fmt, target_fmt):
            raise UnsupportedConversion(source_fmt.value, target_fmt.value)
        return fallback

    def is_routable(self, source, target) -> bool:
        try:
            self.route(source, target)
        except UnsupportedConversion:
            return False
        return True


def build_router(
    codec: CodecProvider,
    registry: Optional[FormatRegistry] = None,
    scratch_dir: Optional[Union[str, Path]] = None,
    fail_soft: bool = True,
) -> ConversionRouter:
    """Router with one converter per category plus per-category generic fallbacks"""
    registry = registry or format_registry
    converters = [
        DocumentConverter(codec, scratch_dir, fail_soft=fail_soft),
        ImageConverter(codec, scratch_dir),
        SpreadsheetConverter(codec, scratch_dir),
        PresentationConverter(codec, scratch_dir),
        EbookConverter(codec, scratch_dir),
    ]
    generic = {
        category: GenericConverter(category, codec, registry, scratch_dir)
        for category in Category
    }
    return ConversionRouter(registry, converters, generic)
