"""
pipeline.py - Document optimization entry point.

Pipeline:
1. Decide whether the input is a ZIP container or a PDF
2. Run the matching walker (images found, recompressed, kept or replaced)
3. Return the walker's OptimizationResult unchanged

Fatal errors from the walkers propagate; there are no retries.
"""

import logging
import time
from enum import Enum
from typing import Optional

from .container import optimize_container
from .errors import UnsupportedFormatError
from .pdf_walker import optimize_pdf
from .results import DocumentArtifact, OptimizationResult, ProgressCallback
from .settings import OptimizeSettings

logger = logging.getLogger(__name__)


class DocumentFormat(Enum):
    CONTAINER = "container"
    PDF = "pdf"


CONTAINER_EXTENSIONS = {
    ".hwpx", ".pptx", ".show", ".docx", ".xlsx",
    ".odt", ".odp", ".ods", ".epub", ".zip",
}

PDF_MAGIC = b"%PDF-"
ZIP_MAGIC = b"PK\x03\x04"


def detect_format(artifact: DocumentArtifact) -> DocumentFormat:
    """
    Pick a walker from the file extension, falling back to magic bytes.

    Raises:
        UnsupportedFormatError: neither the name nor the content match
    """
    suffix = artifact.suffix
    if suffix == ".pdf":
        return DocumentFormat.PDF
    if suffix in CONTAINER_EXTENSIONS:
        return DocumentFormat.CONTAINER

    # Stored ZIP entries may contain a PDF header, so the ZIP signature goes first
    if artifact.data.startswith(ZIP_MAGIC):
        return DocumentFormat.CONTAINER
    # PDF headers may be preceded by junk within the first KB
    if PDF_MAGIC in artifact.data[:1024]:
        return DocumentFormat.PDF

    raise UnsupportedFormatError(f"Unsupported document type: {artifact.name}")


def optimize_document(
    artifact: DocumentArtifact,
    settings: Optional[OptimizeSettings] = None,
    progress_callback: Optional[ProgressCallback] = None,
    document_format: Optional[DocumentFormat] = None
) -> OptimizationResult:
    """
    Optimize one document.

    Args:
        artifact: Input document (name + bytes)
        settings: Quality, skip-alpha and worker options
        progress_callback: Optional callback(percent), 0-100, non-decreasing
        document_format: Declared format (detected when omitted)

    Returns:
        OptimizationResult from the selected walker
    """
    settings = settings or OptimizeSettings()
    document_format = document_format or detect_format(artifact)

    logger.info(
        f"Processing {artifact.name}: {artifact.size:,} bytes, "
        f"{document_format.value}, quality {settings.quality}, "
        f"skip_alpha={settings.skip_alpha}"
    )

    start = time.time()
    if document_format is DocumentFormat.PDF:
        result = optimize_pdf(artifact, settings, progress_callback)
    else:
        result = optimize_container(artifact, settings, progress_callback)

    logger.info(f"Done in {time.time() - start:.1f}s\n{result.summary()}")
    return result
