"""
Converter strategy base class
"""
import logging
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterator, Optional, Tuple, Union

from fileconv.core.errors import CodecFailure, UnsupportedConversion
from fileconv.models.conversion import ConversionOptions, ConversionOutput
from fileconv.models.formats import Category, Format, format_token
from fileconv.services.codec_provider import CodecProvider

logger = logging.getLogger(__name__)

FormatPair = Tuple[Format, Format]


@dataclass
class ConversionContext:
    """Per-call state handed to a strategy; converters themselves are shared"""
    input_path: Path
    source: Format
    target: Format
    options: ConversionOptions
    scratch: Path
    display_name: str


class BaseConverter(ABC):
    """One conversion strategy.

    Subclasses turn a ConversionContext into the bytes of the target file.
    The base class owns the file lifecycle: exactly one output file is written,
    intermediates live in a scratch directory removed on every exit path, and
    a partial output is removed when conversion fails.
    """

    category: Category

    def __init__(self, codec: CodecProvider, scratch_dir: Optional[Union[str, Path]] = None):
        self._codec = codec
        self._scratch_dir = Path(scratch_dir) if scratch_dir else None

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def pairs(self) -> FrozenSet[FormatPair]:
        """(source, target) pairs this strategy has a rule for"""

    @abstractmethod
    def _convert(self, ctx: ConversionContext) -> Union[bytes, str]:
        ...

    def supports(self, source: Format, target: Format) -> bool:
        return (source, target) in self.pairs()

    def convert(
        self,
        input_path: Union[str, Path],
        target_format: Union[str, Format],
        options: Optional[ConversionOptions] = None,
        output_path: Optional[Union[str, Path]] = None,
        *,
        source_format: Optional[Union[str, Format]] = None,
        display_name: Optional[str] = None,
    ) -> ConversionOutput:
        input_path = Path(input_path)
        source = Format.parse(source_format) if source_format else Format.from_path(input_path)
        target = Format.parse(target_format)
        if source is None or target is None or not self.supports(source, target):
            raise UnsupportedConversion(
                format_token(source_format) or input_path.suffix.lstrip("."), format_token(target_format)
            )

        output = Path(output_path) if output_path else input_path.with_name(
            f"{input_path.stem}_converted.{target.value}"
        )
        options = options or ConversionOptions()
        logger.info(f"{self.name}: converting {source.value} to {target.value} ({input_path.name})")

        try:
            with self._scratch() as scratch:
                ctx = ConversionContext(
                    input_path=input_path,
                    source=source,
                    target=target,
                    options=options,
                    scratch=scratch,
                    display_name=display_name or input_path.name,
                )
                payload = self._convert(ctx)
                if isinstance(payload, str):
                    payload = payload.encode("utf-8")
                output.parent.mkdir(parents=True, exist_ok=True)
                output.write_bytes(payload)
        except CodecFailure:
            self._discard(output)
            raise
        except Exception as e:
            self._discard(output)
            raise CodecFailure(
                f"Failed to convert {source.value.upper()} to {target.value.upper()}: {e}"
            ) from e

        return ConversionOutput(output_path=output, output_size_bytes=output.stat().st_size)

    @contextmanager
    def _scratch(self) -> Iterator[Path]:
        if self._scratch_dir is not None:
            self._scratch_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(
            prefix="fileconv-", dir=str(self._scratch_dir) if self._scratch_dir else None
        ) as scratch:
            yield Path(scratch)

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial output {path}: {e}")
