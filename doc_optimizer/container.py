"""
container.py - Image recompression inside ZIP-based documents.

HWPX, PPTX, DOCX, ODF and EPUB files are ZIP archives. Images are found by
file extension anywhere in the archive, recompressed, and written back under
the same entry name when the new bytes are smaller.
"""

import io
import logging
import zipfile
from pathlib import PurePosixPath
from typing import Dict, List, Optional

from .compression import (
    ALPHA,
    EXTENSION_TO_MIME,
    FAILED,
    ImageAsset,
    Kept,
    Replaced,
    recompress_assets,
)
from .errors import AssemblyError, ContainerLoadError
from .results import (
    DocumentArtifact,
    OptimizationResult,
    ProgressCallback,
    ProgressReporter,
    RunLog,
    reduction_percentage,
)
from .settings import OptimizeSettings

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp"}

# Entry that ODF/EPUB/HWPX readers expect uncompressed
MIMETYPE_ENTRY = "mimetype"


def entry_extension(path: str) -> str:
    return PurePosixPath(path).suffix.lower()


def is_image_entry(path: str) -> bool:
    """Syntactic check on the entry name only; content is not sniffed."""
    return entry_extension(path) in IMAGE_EXTENSIONS


def open_archive(data: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, OSError) as e:
        raise ContainerLoadError(f"Not a valid ZIP container: {e}") from e


def read_entry(archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> bytes:
    try:
        return archive.read(info)
    except (zipfile.BadZipFile, NotImplementedError, RuntimeError, OSError) as e:
        raise ContainerLoadError(f"Cannot read entry {info.filename}: {e}") from e


def repackage(archive: zipfile.ZipFile, replacements: Dict[str, bytes]) -> bytes:
    """
    Write a new archive from the source entry table.

    Entry order, names, timestamps and attributes are kept. Everything is
    deflated at level 9 except a stored `mimetype` entry, which stays stored.
    """
    buffer = io.BytesIO()

    try:
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as out:
            out.comment = archive.comment
            for info in archive.infolist():
                data = replacements.get(info.filename)
                if data is None:
                    data = read_entry(archive, info)

                new_info = zipfile.ZipInfo(info.filename, date_time=info.date_time)
                new_info.comment = info.comment
                new_info.external_attr = info.external_attr
                new_info.create_system = info.create_system

                if info.filename == MIMETYPE_ENTRY and info.compress_type == zipfile.ZIP_STORED:
                    new_info.compress_type = zipfile.ZIP_STORED
                    out.writestr(new_info, data)
                else:
                    new_info.compress_type = zipfile.ZIP_DEFLATED
                    out.writestr(new_info, data, compress_type=zipfile.ZIP_DEFLATED, compresslevel=9)
    except ContainerLoadError:
        raise
    except Exception as e:
        raise AssemblyError(f"Failed to repackage container: {e}") from e

    return buffer.getvalue()


def optimize_container(
    artifact: DocumentArtifact,
    settings: Optional[OptimizeSettings] = None,
    progress_callback: Optional[ProgressCallback] = None
) -> OptimizationResult:
    """
    Recompress the images of a ZIP-based document.

    Args:
        artifact: Input document
        settings: Quality / skip-alpha / worker options
        progress_callback: Optional callback(percent), non-decreasing

    Returns:
        OptimizationResult with the repackaged bytes
    """
    settings = settings or OptimizeSettings()
    progress = ProgressReporter(progress_callback)
    log = RunLog(f"Starting optimization for: {artifact.name}")
    original_size = artifact.size

    progress.report(5)
    archive = open_archive(artifact.data)

    with archive:
        image_infos = [
            info for info in archive.infolist()
            if not info.is_dir() and is_image_entry(info.filename)
        ]
        log.info(f"Found {len(image_infos)} images in the document structure.")

        if not image_infos:
            progress.report(100)
            return OptimizationResult(
                original_size=original_size,
                compressed_size=original_size,
                file_name=artifact.name,
                reduction_percentage=0.0,
                data=artifact.data,
                logs=log.lines,
            )

        items = []
        for info in image_infos:
            ext = entry_extension(info.filename)
            skip_reason = ALPHA if settings.skip_alpha and ext == ".png" else None
            # Skipped entries are never read
            data = b"" if skip_reason else read_entry(archive, info)
            asset = ImageAsset(
                locator=info.filename,
                data=data,
                mime=EXTENSION_TO_MIME[ext],
            )
            items.append((asset, skip_reason))

        replacements: Dict[str, bytes] = {}
        failed: List[str] = []
        total = len(items)

        outcomes = recompress_assets(items, settings.encoder_quality, settings.worker_count)
        for done, (asset, outcome) in enumerate(outcomes, start=1):
            if isinstance(outcome, Replaced):
                replacements[asset.locator] = outcome.data
                log.info(
                    f"Replaced {asset.locator}: {asset.size:,} -> {len(outcome.data):,} bytes"
                )
            elif isinstance(outcome, Kept) and outcome.reason == ALPHA:
                log.info(f"Skipped {asset.locator}: PNG may carry transparency")
            elif isinstance(outcome, Kept) and outcome.reason == FAILED:
                failed.append(asset.locator)
                log.warning(f"Error processing {asset.locator}: {outcome.error}")
            else:
                log.info(f"Kept {asset.locator}: recompressed image was not smaller")

            progress.scaled(done, total, 10, 90)

        result_data = repackage(archive, replacements)

    progress.report(100)
    compressed_size = len(result_data)
    logger.debug(
        f"{artifact.name}: {len(replacements)}/{total} images replaced, "
        f"{original_size:,} -> {compressed_size:,} bytes"
    )

    return OptimizationResult(
        original_size=original_size,
        compressed_size=compressed_size,
        file_name=artifact.name,
        reduction_percentage=reduction_percentage(original_size, compressed_size),
        data=result_data,
        logs=log.lines,
        images_found=total,
        images_replaced=len(replacements),
        images_failed=len(failed),
    )
