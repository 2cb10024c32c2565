"""
errors.py - Exception types raised by the optimizer.

Load and assembly errors abort a run. Image errors are caught per asset by
the walkers, which keep the original bytes and carry on.
"""


class OptimizerError(Exception):
    """Base class for every error raised by this package."""


class DocumentLoadError(OptimizerError):
    """The input bytes are not a valid instance of the declared format."""


class ContainerLoadError(DocumentLoadError):
    """The input could not be opened as a ZIP archive."""


class PdfLoadError(DocumentLoadError):
    """The input could not be parsed as a PDF."""


class ImageRecompressionError(OptimizerError):
    """One embedded image could not be recompressed."""


class ImageDecodeError(ImageRecompressionError):
    """The bytes are not a recognizable raster image."""


class ImageEncodeError(ImageRecompressionError):
    """The encoder produced no output."""


class AssemblyError(OptimizerError):
    """Re-serializing the archive or PDF failed."""


class UnsupportedFormatError(OptimizerError, ValueError):
    """Neither walker can handle the input."""
