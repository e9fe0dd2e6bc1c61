"""Prepare user-submitted renders for transmission to the generator.

Every image is decoded with Pillow, oriented from its EXIF data, scaled so its
longer side is at most ``ImageConfig.max_dimension`` and re-encoded as JPEG.
Batches run on a thread pool where each file has its own decode deadline, so
one stalled file never holds up the others.
"""
from __future__ import annotations

import base64
import io
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from PIL import Image, ImageOps

from .config import ImageConfig
from .errors import DecodeError, NormalizationError, NormalizationTimeoutError
from .models import ImagePayload

LOGGER = logging.getLogger(__name__)

OUTPUT_MIME_TYPE = "image/jpeg"
FALLBACK_MIME_TYPE = "image/jpeg"
DEFAULT_DISPLAY_NAME = "render.jpg"
EXTENSION_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
}
# Declared types the generator cannot accept; relabelled instead of rejected.
RELABELLED_MIME_TYPES = {"image/heic", "image/heif"}

Decoder = Callable[[bytes], Image.Image]


def resolve_mime_type(declared_type: Optional[str], filename: Optional[str]) -> str:
    """Return a usable image MIME type; never empty."""

    declared = (declared_type or "").strip().lower()
    if declared.startswith("image/"):
        if declared in RELABELLED_MIME_TYPES:
            return FALLBACK_MIME_TYPE
        return declared
    extension = Path(filename or "").suffix.lower().lstrip(".")
    return EXTENSION_MIME_TYPES.get(extension, FALLBACK_MIME_TYPE)


def scaled_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """Shrink ``(width, height)`` so the longer side is ``max_dimension``; never enlarge."""

    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width >= height:
        return max_dimension, max(1, int(height * max_dimension / width + 0.5))
    return max(1, int(width * max_dimension / height + 0.5)), max_dimension


def decode_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return ImageOps.exif_transpose(image)


def _flatten(image: Image.Image) -> Image.Image:
    has_alpha = image.mode in ("RGBA", "LA") or (
        image.mode == "P" and "transparency" in image.info
    )
    if not has_alpha:
        return image.convert("RGB")
    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, (255, 255, 255))
    background.paste(rgba, mask=rgba.getchannel("A"))
    return background


@dataclass(frozen=True, eq=False)
class ImageSource:
    """An uploaded file whose type metadata may be missing or wrong."""

    data: bytes
    filename: Optional[str] = None
    declared_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: Path) -> "ImageSource":
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise DecodeError(f"Could not open {path}: {exc}") from exc
        return cls(data=data, filename=Path(path).name)

    @property
    def display_name(self) -> str:
        return self.filename or DEFAULT_DISPLAY_NAME


@dataclass(frozen=True)
class NormalizedImage:
    payload: str
    mime_type: str
    display_name: str
    width: int
    height: int
    source_mime_type: str

    def to_payload(self) -> ImagePayload:
        return ImagePayload(
            payload=self.payload,
            mime_type=self.mime_type,
            display_name=self.display_name,
        )


@dataclass
class BatchResult:
    images: List[NormalizedImage] = field(default_factory=list)
    failures: List[Tuple[ImageSource, NormalizationError]] = field(default_factory=list)


class ImageNormalizer:
    """Decodes, bounds, and re-encodes renders."""

    def __init__(self, config: ImageConfig | None = None, decoder: Decoder | None = None) -> None:
        self.config = config or ImageConfig()
        self._decoder = decoder or decode_image

    def normalize(self, source: ImageSource) -> NormalizedImage:
        name = source.display_name
        source_mime = resolve_mime_type(source.declared_type, source.filename)
        if not source.data:
            raise DecodeError(f"Could not read {name}: file is empty")

        try:
            image = self._decoder(source.data)
        except DecodeError:
            raise
        except Exception as exc:
            raise DecodeError(f"Could not decode {name}; try saving as JPG or PNG") from exc

        width, height = image.size
        if not width or not height:
            raise DecodeError(f"Image {name} has zero dimensions")

        target = scaled_size(width, height, self.config.max_dimension)
        try:
            output = _flatten(image)
            if target != (width, height):
                output = output.resize(target, Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            output.save(buffer, format="JPEG", quality=self.config.pillow_quality, optimize=True)
        except (OSError, ValueError) as exc:
            raise DecodeError(f"Image resize failed for {name}: {exc}") from exc

        encoded = buffer.getvalue()
        if not encoded:
            raise DecodeError(f"JPEG export failed for {name}")
        LOGGER.debug(
            "Normalized %s from %dx%d to %dx%d (%d bytes)",
            name,
            width,
            height,
            target[0],
            target[1],
            len(encoded),
        )
        return NormalizedImage(
            payload=base64.b64encode(encoded).decode("ascii"),
            mime_type=OUTPUT_MIME_TYPE,
            display_name=name,
            width=target[0],
            height=target[1],
            source_mime_type=source_mime,
        )

    def normalize_many(self, sources: Iterable[ImageSource]) -> BatchResult:
        """Normalize ``sources`` concurrently; failures are collected per file."""

        pending = list(sources)
        limit = self.config.max_images
        accepted, overflow = pending[:limit], pending[limit:]
        outcomes: List[object] = [None] * len(accepted)

        if accepted:
            executor = ThreadPoolExecutor(
                max_workers=len(accepted), thread_name_prefix="boothcost-image"
            )
            try:
                futures = [executor.submit(self.normalize, source) for source in accepted]
                deadline = time.monotonic() + self.config.decode_timeout_seconds
                for index, future in enumerate(futures):
                    remaining = max(0.0, deadline - time.monotonic())
                    try:
                        outcomes[index] = future.result(timeout=remaining)
                    except FutureTimeoutError:
                        future.cancel()
                        outcomes[index] = NormalizationTimeoutError(
                            f"Image decode timed out for {accepted[index].display_name}; "
                            "try saving as JPG or PNG"
                        )
                    except NormalizationError as exc:
                        outcomes[index] = exc
            finally:
                # Abandoned workers still run to completion and are joined at interpreter exit.
                executor.shutdown(wait=False, cancel_futures=True)

        result = BatchResult()
        for source, outcome in zip(accepted, outcomes):
            if isinstance(outcome, NormalizedImage):
                result.images.append(outcome)
            else:
                LOGGER.warning("Dropping image %s: %s", source.display_name, outcome)
                result.failures.append((source, outcome))
        for source in overflow:
            LOGGER.warning("Dropping image %s: more than %d images", source.display_name, limit)
            result.failures.append(
                (source, NormalizationError(f"Maximum {limit} images allowed"))
            )
        return result


__all__ = [
    "ImageSource",
    "ImageNormalizer",
    "NormalizedImage",
    "BatchResult",
    "resolve_mime_type",
    "scaled_size",
    "decode_image",
    "EXTENSION_MIME_TYPES",
]
