from .formats import Category, Format, FormatCapability, extension_of, format_token
from .conversion import ConversionOptions, ConversionOutput, ResizeFit
from .jobs import (
    JobStatus,
    JobSpec,
    ConversionJob,
    BatchJob,
    BatchStatus,
    BatchReport,
    BatchCounts,
    JobSummary,
    ConversionAccepted,
    BatchAccepted,
    JobStatusResponse,
    ConversionStats,
)

__all__ = [
    "Category",
    "Format",
    "FormatCapability",
    "extension_of",
    "format_token",
    "ConversionOptions",
    "ConversionOutput",
    "ResizeFit",
    "JobStatus",
    "JobSpec",
    "ConversionJob",
    "BatchJob",
    "BatchStatus",
    "BatchReport",
    "BatchCounts",
    "JobSummary",
    "ConversionAccepted",
    "BatchAccepted",
    "JobStatusResponse",
    "ConversionStats",
]
