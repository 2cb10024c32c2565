"""
Document Optimizer - image recompression for office documents and PDFs.

This package shrinks ZIP-container documents (HWPX, PPTX, DOCX, ...) and PDF
files by re-encoding their embedded raster images at a lower quality and
keeping each result only when it is smaller than the original.
"""

from .errors import (
    AssemblyError,
    ContainerLoadError,
    ImageDecodeError,
    ImageEncodeError,
    OptimizerError,
    PdfLoadError,
    UnsupportedFormatError,
)
from .pipeline import DocumentFormat, detect_format, optimize_document
from .results import DocumentArtifact, OptimizationResult
from .settings import OptimizeSettings

__version__ = "1.0.0"

__all__ = [
    "AssemblyError",
    "ContainerLoadError",
    "DocumentArtifact",
    "DocumentFormat",
    "ImageDecodeError",
    "ImageEncodeError",
    "OptimizationResult",
    "OptimizeSettings",
    "OptimizerError",
    "PdfLoadError",
    "UnsupportedFormatError",
    "detect_format",
    "optimize_document",
]
