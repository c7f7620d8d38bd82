"""
Conversion option and result models
"""
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class ResizeFit(str, Enum):
    """How a resized image fits the requested box"""
    INSIDE = "inside"  # keep aspect ratio, never enlarge
    COVER = "cover"  # keep aspect ratio, crop to fill
    FILL = "fill"  # stretch to exact size


class ConversionOptions(BaseModel):
    """Optional knobs accepted by converters; none is mandatory"""
    quality: Optional[int] = Field(None, ge=1, le=100, description="Lossy encoder quality (1-100)")
    compression: Optional[int] = Field(None, ge=0, le=9, description="PNG compression level (0-9)")
    width: Optional[int] = Field(None, gt=0, le=20000, description="Target width in pixels")
    height: Optional[int] = Field(None, gt=0, le=20000, description="Target height in pixels")
    fit: ResizeFit = Field(ResizeFit.INSIDE, description="Resize strategy")
    ai_enhanced: bool = Field(False, description="Recorded for the caller; no effect on output")

    @property
    def wants_resize(self) -> bool:
        return self.width is not None or self.height is not None


class ConversionOutput(BaseModel):
    """Artifact written by a converter"""
    output_path: Path
    output_size_bytes: int
