"""
compression.py - Embedded image recompression.

Supports:
- JPEG for opaque sources (transparency flattened onto white)
- WebP for sources whose format can carry an alpha channel

Both walkers hand their images to this module and only ever see bytes back,
wrapped in a Replaced/Kept outcome.
"""

import io
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Tuple, Union

from PIL import Image

from .errors import ImageDecodeError, ImageEncodeError, ImageRecompressionError

logger = logging.getLogger(__name__)

# Formats (Pillow names) whose files may carry an alpha channel
ALPHA_FORMATS = {"PNG", "GIF", "WEBP", "TIFF"}

MIME_TO_FORMAT = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/bmp": "BMP",
    "image/webp": "WEBP",
    "image/tiff": "TIFF",
}

EXTENSION_TO_MIME = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
}

WHITE = (255, 255, 255)

# Modes the JPEG encoder writes as they are
JPEG_MODES = {"L", "RGB", "CMYK"}

# Outcome reasons
NOT_SMALLER = "not_smaller"
ALPHA = "alpha"
FAILED = "failed"
NOT_STREAM = "not_stream"


@dataclass
class ImageAsset:
    """An image found while walking a document."""
    locator: str
    data: bytes = field(repr=False)
    mime: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    bits_per_component: Optional[int] = None
    color_space: Optional[str] = None
    has_alpha_mask: bool = False

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Replaced:
    """Recompressed bytes were strictly smaller and should be used."""
    data: bytes = field(repr=False)
    format: str = "JPEG"
    original_size: int = 0


@dataclass(frozen=True)
class Kept:
    """The original bytes stay in place."""
    data: bytes = field(repr=False)
    reason: str = NOT_SMALLER
    error: Optional[str] = None


RecompressionOutcome = Union[Replaced, Kept]


def choose_target_format(declared_mime: Optional[str], detected_format: Optional[str] = None) -> str:
    """
    Pick the output format for an image.

    The declared mime wins; the format Pillow detected is only used when
    nothing was declared.
    """
    source = MIME_TO_FORMAT.get(declared_mime.lower()) if declared_mime else None
    if source is None:
        source = (detected_format or "").upper() or None
    if source in ALPHA_FORMATS:
        return "WEBP"
    return "JPEG"


def decode_image(data: bytes) -> Image.Image:
    """Decode image bytes, raising ImageDecodeError on anything unreadable."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Cannot decode image: {e}") from e
    return img


def has_alpha(img: Image.Image) -> bool:
    if img.mode in ("RGBA", "LA", "PA", "RGBa", "La"):
        return True
    return img.mode == "P" and "transparency" in img.info


def flatten_alpha(img: Image.Image, background: Tuple[int, int, int] = WHITE) -> Image.Image:
    """Composite onto an opaque background and drop the alpha channel."""
    rgba = img.convert("RGBA")
    bg = Image.new("RGBA", rgba.size, background + (255,))
    return Image.alpha_composite(bg, rgba).convert("RGB")


def encode_image(img: Image.Image, target_format: str, quality: float) -> bytes:
    """
    Encode a decoded image as JPEG or WebP.

    Args:
        img: Decoded Pillow image
        target_format: "JPEG" or "WEBP"
        quality: Encoder quality, 0.0-1.0

    Returns:
        Encoded bytes
    """
    pil_quality = max(0, min(100, round(quality * 100)))
    buffer = io.BytesIO()

    try:
        if target_format == "WEBP":
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA")
            img.save(buffer, format="WEBP", quality=pil_quality, method=4)
        else:
            # Gray and CMYK keep their channel count
            if has_alpha(img):
                img = flatten_alpha(img)
            elif img.mode not in JPEG_MODES:
                img = img.convert("RGB")
            img.save(buffer, format="JPEG", quality=pil_quality, optimize=True)
    except (OSError, ValueError, KeyError) as e:
        raise ImageEncodeError(f"Cannot encode image as {target_format}: {e}") from e

    data = buffer.getvalue()
    if not data:
        raise ImageEncodeError(f"Encoder produced no {target_format} output")
    return data


def recompress(data: bytes, declared_mime: Optional[str], quality: float) -> bytes:
    """
    Re-encode image bytes at the given quality.

    Args:
        data: Source image bytes
        declared_mime: Mime type the container declares for the bytes
        quality: Encoder quality, 0.0-1.0

    Returns:
        Encoded bytes (JPEG, or WebP when the source can carry alpha)
    """
    img = decode_image(data)
    with img:
        target = choose_target_format(declared_mime, img.format)
        return encode_image(img, target, quality)


def sniff_format(data: bytes) -> str:
    """Identify the encoder output by its signature."""
    if data[:2] == b"\xff\xd8":
        return "JPEG"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "WEBP"
    return "UNKNOWN"


def image_channels(data: bytes) -> Optional[int]:
    """Channel count of encoded image bytes, or None when unreadable."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return len(img.getbands())
    except (OSError, ValueError, SyntaxError):
        return None


def recompress_asset(asset: ImageAsset, quality: float) -> RecompressionOutcome:
    """
    Recompress one asset and apply the accept rule.

    Only a strictly smaller result is accepted. Per-image failures become
    a Kept outcome instead of propagating.
    """
    try:
        new_data = recompress(asset.data, asset.mime, quality)
    except ImageRecompressionError as e:
        logger.debug(f"{asset.locator}: {e}")
        return Kept(asset.data, reason=FAILED, error=str(e))

    if len(new_data) < asset.size:
        return Replaced(new_data, format=sniff_format(new_data), original_size=asset.size)
    return Kept(asset.data, reason=NOT_SMALLER)


def recompress_assets(
    items: Iterable[Tuple[ImageAsset, Optional[str]]],
    quality: float,
    max_workers: int = 1
) -> Iterator[Tuple[ImageAsset, RecompressionOutcome]]:
    """
    Recompress a batch of assets, yielding results in input order.

    Args:
        items: (asset, skip_reason) pairs; assets with a skip reason are
            kept as-is without being decoded
        quality: Encoder quality, 0.0-1.0
        max_workers: Thread pool size (1 = sequential)

    Yields:
        (asset, outcome) pairs, in the order the assets were given
    """
    items = list(items)

    if max_workers == 1 or len(items) <= 1:
        for asset, skip_reason in items:
            if skip_reason:
                yield asset, Kept(asset.data, reason=skip_reason)
            else:
                yield asset, recompress_asset(asset, quality)
        return

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            None if skip_reason else executor.submit(recompress_asset, asset, quality)
            for asset, skip_reason in items
        ]
        for (asset, skip_reason), future in zip(items, futures):
            if future is None:
                yield asset, Kept(asset.data, reason=skip_reason)
            else:
                yield asset, future.result()
