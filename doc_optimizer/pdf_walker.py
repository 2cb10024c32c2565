"""
pdf_walker.py - Image recompression inside PDF object graphs.

Walks every page's /Resources -> /XObject dictionary, collects each image
object once (keyed by object number), recompresses its raw stream and
rewrites the stream in place when the result is smaller.
"""

import io
import logging
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

import pikepdf
from pikepdf import Dictionary, Name, Stream

from .compression import (
    ALPHA,
    FAILED,
    NOT_STREAM,
    ImageAsset,
    Replaced,
    image_channels,
    recompress_assets,
)
from .errors import AssemblyError, PdfLoadError
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

# Raw image streams are handed to the recompressor as JPEG data
STREAM_MIME = "image/jpeg"

FORMAT_TO_FILTER = {
    "JPEG": Name.DCTDecode,
}

DEFAULT_BITS_PER_COMPONENT = 8
DEFAULT_COLOR_SPACE = Name.DeviceRGB

COLOR_SPACE_COMPONENTS = {
    "/DeviceGray": 1,
    "/CalGray": 1,
    "/DeviceRGB": 3,
    "/CalRGB": 3,
    "/Lab": 3,
    "/DeviceCMYK": 4,
    "/Indexed": 1,
    "/Separation": 1,
}


def color_space_components(color_space) -> Optional[int]:
    """
    Number of components an image in this color space carries.

    Returns None for color spaces whose component count cannot be read.
    """
    if color_space is None:
        color_space = DEFAULT_COLOR_SPACE
    if isinstance(color_space, Name):
        return COLOR_SPACE_COMPONENTS.get(str(color_space))
    if not isinstance(color_space, pikepdf.Array) or len(color_space) == 0:
        return None

    family = str(color_space[0])
    if family == "/ICCBased" and len(color_space) > 1:
        return _optional_int(color_space[1].get("/N"))
    if family == "/DeviceN" and len(color_space) > 1:
        return len(color_space[1])
    return COLOR_SPACE_COMPONENTS.get(family)


class PdfObjectKind(Enum):
    """The object kinds the traversal distinguishes."""
    DICTIONARY = "dictionary"
    STREAM = "stream"
    REFERENCE = "reference"
    OTHER = "other"


def classify(obj, resolve: bool = True) -> PdfObjectKind:
    """
    Tag a PDF value with its kind.

    With resolve=False an indirect object is reported as a REFERENCE instead
    of the kind of the object it points to.
    """
    if not isinstance(obj, pikepdf.Object):
        return PdfObjectKind.OTHER
    if not resolve and obj.is_indirect:
        return PdfObjectKind.REFERENCE
    if isinstance(obj, Stream):
        return PdfObjectKind.STREAM
    if isinstance(obj, Dictionary):
        return PdfObjectKind.DICTIONARY
    return PdfObjectKind.OTHER


def is_image(obj) -> bool:
    if classify(obj) not in (PdfObjectKind.STREAM, PdfObjectKind.DICTIONARY):
        return False
    return obj.get("/Subtype") == Name.Image


def format_objgen(objgen) -> str:
    num, gen = objgen
    return f"{num} {gen} R"


def _optional_int(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class ImageRef(NamedTuple):
    """A unique image object reachable from the page tree."""
    objgen: tuple
    obj: pikepdf.Object

    @property
    def locator(self) -> str:
        return format_objgen(self.objgen)


class PDFImageWalker:
    """
    Holds an open PDF while its images are collected and rewritten.

    Rewrites happen on the original stream objects, so every page that
    references an image sees the new content without any reference being
    touched.
    """

    def __init__(self, data: bytes):
        try:
            # Empty user passwords are decrypted on open
            self.pdf = pikepdf.open(io.BytesIO(data))
        except pikepdf.PasswordError as e:
            raise PdfLoadError(f"PDF requires a password: {e}") from e
        except (pikepdf.PdfError, ValueError, OSError) as e:
            raise PdfLoadError(f"Cannot parse PDF: {e}") from e

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.pdf.close()

    def collect_images(self) -> List[ImageRef]:
        """
        Collect image XObjects from every page, once per object.

        Only indirect entries are considered; the order is the order in
        which the objects are first reached.

        Raises:
            PdfLoadError: the page tree or a resource dictionary is damaged
        """
        try:
            return self._collect_images()
        except pikepdf.PdfError as e:
            raise PdfLoadError(f"Cannot read PDF page tree: {e}") from e

    def _collect_images(self) -> List[ImageRef]:
        found: Dict[tuple, ImageRef] = {}

        for page in self.pdf.pages:
            resources = page.obj.get("/Resources")
            if classify(resources) is not PdfObjectKind.DICTIONARY:
                continue

            xobjects = resources.get("/XObject")
            if classify(xobjects) is not PdfObjectKind.DICTIONARY:
                continue

            for name, entry in xobjects.items():
                if classify(entry, resolve=False) is not PdfObjectKind.REFERENCE:
                    continue
                if entry.objgen in found or not is_image(entry):
                    continue
                found[entry.objgen] = ImageRef(entry.objgen, entry)
                logger.debug(f"Image {name} -> {format_objgen(entry.objgen)}")

        return list(found.values())

    def to_asset(self, ref: ImageRef) -> ImageAsset:
        """Read an image stream's raw (still encoded) bytes."""
        obj = ref.obj
        return ImageAsset(
            locator=ref.locator,
            data=bytes(obj.read_raw_bytes()),
            mime=STREAM_MIME,
            width=_optional_int(obj.get("/Width")),
            height=_optional_int(obj.get("/Height")),
            bits_per_component=_optional_int(obj.get("/BitsPerComponent")),
            color_space=str(obj.get("/ColorSpace")) if "/ColorSpace" in obj else None,
            has_alpha_mask="/SMask" in obj,
        )

    def channel_mismatch(self, stream: Stream, data: bytes) -> Optional[str]:
        """Describe why encoded data cannot stand in for the stream, if it can't."""
        expected = color_space_components(stream.get("/ColorSpace"))
        if expected is None:
            return None
        channels = image_channels(data)
        if channels != expected:
            return f"recompressed image has {channels} channels, /ColorSpace expects {expected}"
        return None

    def replace_image(self, stream: Stream, data: bytes, image_filter: Name):
        """
        Rewrite an image stream in place with newly encoded data.

        Width, Height, BitsPerComponent and ColorSpace carry over; every
        other entry (DecodeParms, SMask, ...) is dropped.
        """
        attrs = {
            "/Type": Name.XObject,
            "/Subtype": Name.Image,
        }
        for key in ("/Width", "/Height"):
            if key in stream:
                attrs[key] = stream[key]
        attrs["/BitsPerComponent"] = stream.get("/BitsPerComponent", DEFAULT_BITS_PER_COMPONENT)
        attrs["/ColorSpace"] = stream.get("/ColorSpace", DEFAULT_COLOR_SPACE)

        for key in list(stream.keys()):
            if key != "/Length":
                del stream[key]
        for key, value in attrs.items():
            stream[key] = value

        stream.write(data, filter=image_filter)

    def save(self) -> bytes:
        """Serialize with object streams; pages and form fields are left as they are."""
        buffer = io.BytesIO()
        try:
            self.pdf.save(
                buffer,
                compress_streams=True,
                object_stream_mode=pikepdf.ObjectStreamMode.generate
            )
        except Exception as e:
            raise AssemblyError(f"Failed to save PDF: {e}") from e
        return buffer.getvalue()


def optimize_pdf(
    artifact: DocumentArtifact,
    settings: Optional[OptimizeSettings] = None,
    progress_callback: Optional[ProgressCallback] = None
) -> OptimizationResult:
    """
    Recompress the image objects of a PDF.

    Args:
        artifact: Input document
        settings: Quality / skip-alpha / worker options
        progress_callback: Optional callback(percent), non-decreasing

    Returns:
        OptimizationResult with the re-serialized PDF
    """
    settings = settings or OptimizeSettings()
    progress = ProgressReporter(progress_callback)
    log = RunLog(f"Starting PDF optimization: {artifact.name}")
    original_size = artifact.size

    progress.report(10)

    replaced = 0
    failed = 0

    with PDFImageWalker(artifact.data) as walker:
        refs = walker.collect_images()
        total = len(refs)
        log.info(f"Found {total} unique image objects in PDF.")

        if total:
            items = []
            streams = {}
            for ref in refs:
                if classify(ref.obj) is not PdfObjectKind.STREAM:
                    items.append((ImageAsset(ref.locator, b""), NOT_STREAM))
                    continue

                try:
                    asset = walker.to_asset(ref)
                except pikepdf.PdfError as e:
                    log.warning(f"Error reading image object {ref.locator}: {e}")
                    items.append((ImageAsset(ref.locator, b""), FAILED))
                    failed += 1
                    continue

                streams[ref.locator] = ref.obj
                skip_reason = ALPHA if settings.skip_alpha and asset.has_alpha_mask else None
                items.append((asset, skip_reason))

            outcomes = recompress_assets(items, settings.encoder_quality, settings.worker_count)
            for done, (asset, outcome) in enumerate(outcomes, start=1):
                mismatch = None
                if isinstance(outcome, Replaced) and outcome.format in FORMAT_TO_FILTER:
                    mismatch = walker.channel_mismatch(streams[asset.locator], outcome.data)

                if mismatch:
                    log.warning(f"Kept image object {asset.locator}: {mismatch}")
                elif isinstance(outcome, Replaced) and outcome.format in FORMAT_TO_FILTER:
                    walker.replace_image(
                        streams[asset.locator],
                        outcome.data,
                        FORMAT_TO_FILTER[outcome.format]
                    )
                    replaced += 1
                    log.info(
                        f"Replaced image object {asset.locator}: "
                        f"{asset.size:,} -> {len(outcome.data):,} bytes"
                    )
                elif isinstance(outcome, Replaced):
                    log.warning(
                        f"Kept image object {asset.locator}: "
                        f"{outcome.format} cannot be embedded in a PDF"
                    )
                elif outcome.reason == NOT_STREAM:
                    log.info(f"Skipped object {asset.locator}: not an image stream")
                elif outcome.reason == ALPHA:
                    log.info(f"Skipped image object {asset.locator}: has a soft mask")
                elif outcome.reason == FAILED:
                    # Unreadable streams were already logged and counted
                    if outcome.error:
                        failed += 1
                        log.warning(f"Error compressing image object {asset.locator}: {outcome.error}")
                else:
                    log.info(f"Kept image object {asset.locator}: recompressed image was not smaller")

                progress.scaled(done, total, 15, 90)

            progress.report(95)

        result_data = walker.save()

    progress.report(100)
    compressed_size = len(result_data)

    return OptimizationResult(
        original_size=original_size,
        compressed_size=compressed_size,
        file_name=artifact.name,
        reduction_percentage=reduction_percentage(original_size, compressed_size),
        data=result_data,
        logs=log.lines,
        images_found=total,
        images_replaced=replaced,
        images_failed=failed,
    )
