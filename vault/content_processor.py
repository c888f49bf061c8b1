"""Validates incoming files, computes their checksum and re-encodes images.

Nothing here touches the tiers: the processor hands back spooled byte
buffers plus metadata and the caller decides where they go.
"""

import io
import logging
import os
from dataclasses import dataclass, field
from tempfile import SpooledTemporaryFile
from typing import BinaryIO, List, Optional, Union

from PIL import Image, ImageOps

from common.checksum import HashingReader, iter_pieces
from common.constants import SPOOL_MAX_MEMORY_BYTES, STREAM_PIECE_SIZE_BYTES
from vault import config
from vault.exceptions import InvalidTypeError, PayloadTooLargeError

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tiff": "image/tiff",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".rtf": "application/rtf",
    ".xml": "application/xml",
    ".json": "application/json",
    ".odt": "application/vnd.oasis.opendocument.text",
    ".ods": "application/vnd.oasis.opendocument.spreadsheet",
    ".odp": "application/vnd.oasis.opendocument.presentation",
    ".zip": "application/zip",
    ".rar": "application/x-rar-compressed",
    ".7z": "application/x-7z-compressed",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
}

# Accept any MIME in these families: clients sniff types inconsistently.
PERMISSIVE_MIME_PREFIXES = ("application/", "text/", "image/")

SUPPORTED_IMAGE_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/bmp",
    "image/tiff",
}

PIL_FORMATS = {
    "webp": "WEBP",
    "jpeg": "JPEG",
    "jpg": "JPEG",
    "png": "PNG",
}


@dataclass
class ImageOptimizationOptions:
    enabled: bool = config.IMAGE_OPTIMIZATION_ENABLED
    max_width: int = config.IMAGE_MAX_WIDTH
    max_height: int = config.IMAGE_MAX_HEIGHT
    quality: int = config.IMAGE_QUALITY
    format: str = config.IMAGE_FORMAT
    preserve_original: bool = config.IMAGE_PRESERVE_ORIGINAL


@dataclass
class ImageOptimization:
    size_bytes: int
    format: str
    compression_ratio: int
    width: int
    height: int


@dataclass
class ProcessedFile:
    """
    Result of processing one upload.

    ``primary`` holds the bytes that get persisted and replicated and that
    ``checksum`` covers. ``original`` is only set when an image was
    re-encoded and the original bytes are retained beside it.
    """
    original_name: str
    mime_type: str
    extension: str
    is_image: bool
    size_bytes: int
    checksum: str
    primary: BinaryIO
    primary_size_bytes: int
    optimization: Optional[ImageOptimization] = None
    original: Optional[BinaryIO] = field(default=None, repr=False)

    @property
    def has_optimized_variant(self) -> bool:
        return self.optimization is not None

    def close(self) -> None:
        self.primary.close()
        if self.original is not None:
            self.original.close()


def _new_spool() -> SpooledTemporaryFile:
    return SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY_BYTES, mode='w+b')


class ContentProcessor:
    """
    Validates type and size, hashes, and optionally optimizes images.
    """

    def __init__(
        self,
        allowed_extensions: Optional[List[str]] = None,
        max_size_bytes: Optional[int] = None,
        image_options: Optional[ImageOptimizationOptions] = None,
    ):
        extensions = allowed_extensions if allowed_extensions is not None else config.ALLOWED_EXTENSIONS
        self.allowed_extensions = [ext.lower() for ext in extensions]
        self.allowed_mime_types = {MIME_TYPES[ext] for ext in self.allowed_extensions if ext in MIME_TYPES}
        self.max_size_bytes = max_size_bytes if max_size_bytes is not None else config.MAX_FILE_SIZE_BYTES
        self.image_options = image_options or ImageOptimizationOptions()

    def validate_type(self, declared_name: str, declared_mime: str) -> str:
        """
        Check the extension and MIME type against the allow-lists.

        Args:
            declared_name: Client-supplied file name
            declared_mime: Client-supplied MIME type

        Returns:
            Lower-cased extension (including the dot)

        Raises:
            InvalidTypeError: If the extension, the MIME type, or the image subtype is not allowed
        """
        extension = os.path.splitext(declared_name or "")[1].lower()
        mime = (declared_mime or "").lower()

        if extension not in self.allowed_extensions:
            raise InvalidTypeError(f"Extension '{extension}' is not allowed")

        mime_allowed = mime in self.allowed_mime_types or mime.startswith(PERMISSIVE_MIME_PREFIXES)
        if not mime_allowed:
            raise InvalidTypeError(f"MIME type '{mime}' is not valid for '{extension}'")

        if mime.startswith("image/") and mime not in SUPPORTED_IMAGE_MIME_TYPES:
            raise InvalidTypeError(f"Unsupported image type: {mime}")

        return extension

    def process(
        self,
        source: Union[bytes, BinaryIO],
        declared_name: str,
        declared_mime: str,
    ) -> ProcessedFile:
        """
        Validate, spool and hash an upload; re-encode it if it is an image.

        Args:
            source: Raw bytes or a readable binary file object
            declared_name: Client-supplied file name
            declared_mime: Client-supplied MIME type

        Returns:
            ProcessedFile whose buffers the caller must close

        Raises:
            InvalidTypeError: If the type is not allowed
            PayloadTooLargeError: If the payload exceeds the size ceiling
        """
        extension = self.validate_type(declared_name, declared_mime)
        mime = declared_mime.lower()
        is_image = mime.startswith("image/")

        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)

        spool, size_bytes, checksum = self._spool(source, declared_name)

        processed = ProcessedFile(
            original_name=declared_name,
            mime_type=mime,
            extension=extension,
            is_image=is_image,
            size_bytes=size_bytes,
            checksum=checksum,
            primary=spool,
            primary_size_bytes=size_bytes,
        )

        if is_image and self.image_options.enabled:
            self._apply_image_optimization(processed)

        return processed

    def _spool(self, source: BinaryIO, declared_name: str):
        spool = _new_spool()
        reader = HashingReader(source)
        try:
            for piece in iter_pieces(reader, STREAM_PIECE_SIZE_BYTES):
                if reader.bytes_read > self.max_size_bytes:
                    raise PayloadTooLargeError(
                        f"File '{declared_name}' exceeds the maximum size of {self.max_size_bytes} bytes"
                    )
                spool.write(piece)
        except Exception:
            spool.close()
            raise
        spool.seek(0)
        return spool, reader.bytes_read, reader.hexdigest()

    def _apply_image_optimization(self, processed: ProcessedFile) -> None:
        """
        Replace the primary bytes with an optimized rendition.

        Any failure leaves ``processed`` untouched: the original bytes are stored.
        """
        options = self.image_options
        original = processed.primary

        try:
            optimized, width, height = self._optimize_image(original)
        except Exception as e:
            logger.warning(f"Image optimization failed for {processed.original_name}, storing original: {e}")
            original.seek(0)
            return

        optimized.seek(0)
        reader = HashingReader(optimized)
        for _ in iter_pieces(reader):
            pass
        optimized_size = reader.bytes_read
        optimized_checksum = reader.hexdigest()
        optimized.seek(0)

        ratio = 0
        if processed.size_bytes:
            ratio = round((processed.size_bytes - optimized_size) / processed.size_bytes * 100)

        processed.optimization = ImageOptimization(
            size_bytes=optimized_size,
            format=options.format,
            compression_ratio=ratio,
            width=width,
            height=height,
        )
        processed.primary = optimized
        processed.primary_size_bytes = optimized_size
        processed.checksum = optimized_checksum

        if options.preserve_original:
            original.seek(0)
            processed.original = original
        else:
            original.close()

        logger.info(
            f"Optimized image {processed.original_name}: {processed.size_bytes} -> {optimized_size} bytes "
            f"({ratio}% compression, {width}x{height} {options.format})"
        )

    def _optimize_image(self, source: BinaryIO):
        options = self.image_options
        pil_format = PIL_FORMATS.get(options.format.lower())
        if pil_format is None:
            raise ValueError(f"Unsupported target image format: {options.format}")

        source.seek(0)
        with Image.open(source) as opened:
            opened.load()
            image = ImageOps.exif_transpose(opened)
            # thumbnail() fits inside the box and never upscales
            image.thumbnail((options.max_width, options.max_height), Image.Resampling.LANCZOS)

            if pil_format == "JPEG" and image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            elif image.mode not in ("RGB", "RGBA", "L", "LA"):
                image = image.convert("RGBA")

            save_kwargs = {"optimize": True} if pil_format == "PNG" else {"quality": options.quality}

            output = _new_spool()
            try:
                image.save(output, format=pil_format, **save_kwargs)
            except Exception:
                output.close()
                raise
            return output, image.width, image.height
