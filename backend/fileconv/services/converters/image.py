"""
Image converter
"""
import logging
from typing import FrozenSet

from fileconv.models.conversion import ConversionOptions
from fileconv.models.formats import Category, Format
from fileconv.services.converters.base import BaseConverter, ConversionContext, FormatPair

logger = logging.getLogger(__name__)

IMAGE_FORMATS = (
    Format.JPG, Format.JPEG, Format.PNG, Format.BMP, Format.TIFF, Format.WEBP, Format.GIF,
)

# Targets produced from a lossless PNG intermediate
TWO_STEP_TARGETS = frozenset({Format.BMP, Format.GIF})


class ImageConverter(BaseConverter):
    """Raster re-encoding with optional resize and quality settings"""

    category = Category.IMAGE

    def __init__(self, codec, scratch_dir=None):
        super().__init__(codec, scratch_dir)
        pairs = {(s, t) for s in IMAGE_FORMATS for t in IMAGE_FORMATS}
        pairs.update((s, Format.PDF) for s in IMAGE_FORMATS)
        self._pairs = frozenset(pairs)

    def pairs(self) -> FrozenSet[FormatPair]:
        return self._pairs

    def _convert(self, ctx: ConversionContext) -> bytes:
        image = self._codec.open_raster(ctx.input_path)
        if ctx.target not in TWO_STEP_TARGETS:
            return self._codec.encode_raster(image, ctx.target, ctx.options)

        intermediate = ctx.scratch / f"{ctx.input_path.stem}.png"
        intermediate.write_bytes(self._codec.encode_raster(image, Format.PNG, ctx.options))
        logger.debug(f"Wrote PNG intermediate for {ctx.display_name}")
        try:
            staged = self._codec.open_raster(intermediate)
        finally:
            intermediate.unlink(missing_ok=True)
        # Resize already applied to the intermediate
        return self._codec.encode_raster(staged, ctx.target, ConversionOptions())
