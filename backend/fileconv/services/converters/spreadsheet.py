"""
Spreadsheet converter
Every source is materialized into a Table (first sheet only) and written out
by the codec.
"""
from typing import FrozenSet

from fileconv.models.formats import Category, Format
from fileconv.services.converters.base import BaseConverter, ConversionContext, FormatPair

SPREADSHEET_SOURCES = (Format.XLSX, Format.XLS, Format.CSV, Format.ODS)
SPREADSHEET_TARGETS = (Format.XLSX, Format.CSV, Format.JSON, Format.HTML, Format.TXT, Format.PDF)


class SpreadsheetConverter(BaseConverter):
    category = Category.SPREADSHEET

    def __init__(self, codec, scratch_dir=None):
        super().__init__(codec, scratch_dir)
        self._pairs = frozenset((s, t) for s in SPREADSHEET_SOURCES for t in SPREADSHEET_TARGETS)

    def pairs(self) -> FrozenSet[FormatPair]:
        return self._pairs

    def _convert(self, ctx: ConversionContext) -> bytes:
        table = self._codec.parse_tabular(ctx.input_path, ctx.source)
        if ctx.target in (Format.HTML, Format.PDF) and table.sheet_name in ("", "Sheet1"):
            table.sheet_name = ctx.display_name
        return self._codec.render_tabular(table, ctx.target)
