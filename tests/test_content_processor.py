"""Tests for the content processor."""

import hashlib
import io

import pytest
from PIL import Image

from vault.content_processor import ContentProcessor, ImageOptimizationOptions
from vault.exceptions import InvalidTypeError, PayloadTooLargeError


def _read_all(handle) -> bytes:
    handle.seek(0)
    return handle.read()


@pytest.fixture
def optimizing_processor():
    return ContentProcessor(
        allowed_extensions=[".jpg", ".jpeg", ".png", ".txt", ".tiff"],
        max_size_bytes=10 * 1024 * 1024,
        image_options=ImageOptimizationOptions(
            enabled=True,
            max_width=1920,
            max_height=1080,
            quality=85,
            format="webp",
            preserve_original=True,
        ),
    )


class TestValidation:
    def test_accepts_allowed_extension_and_mime(self, processor):
        assert processor.validate_type("report.PDF", "application/pdf") == ".pdf"

    def test_rejects_extension_not_allowed(self, processor):
        with pytest.raises(InvalidTypeError):
            processor.validate_type("payload.exe", "application/octet-stream")

    def test_rejects_missing_extension(self, processor):
        with pytest.raises(InvalidTypeError):
            processor.validate_type("README", "text/plain")

    def test_rejects_foreign_mime_family(self, processor):
        with pytest.raises(InvalidTypeError):
            processor.validate_type("notes.txt", "video/mp4")

    def test_accepts_mime_from_permissive_family(self, processor):
        assert processor.validate_type("data.csv", "application/vnd.ms-excel") == ".csv"

    def test_rejects_unsupported_image_subtype(self, processor):
        with pytest.raises(InvalidTypeError):
            processor.validate_type("photo.png", "image/svg+xml")


class TestProcessing:
    def test_checksum_covers_bytes_and_is_stable(self, processor):
        data = b"quarterly numbers\n" * 100
        first = processor.process(data, "numbers.txt", "text/plain")
        second = processor.process(io.BytesIO(data), "numbers.txt", "text/plain")
        try:
            assert first.checksum == second.checksum == hashlib.sha256(data).hexdigest()
            assert first.size_bytes == first.primary_size_bytes == len(data)
            assert _read_all(first.primary) == data
            assert first.is_image is False
            assert first.original is None
        finally:
            first.close()
            second.close()

    def test_streamed_upload_hashed_across_pieces(self, processor):
        data = bytes(range(256)) * 1200
        processed = processor.process(io.BytesIO(data), "table.csv", "text/csv")
        try:
            assert processed.size_bytes == len(data)
            assert processed.checksum == hashlib.sha256(data).hexdigest()
            assert _read_all(processed.primary) == data
        finally:
            processed.close()

    def test_payload_over_ceiling_is_rejected(self):
        processor = ContentProcessor(allowed_extensions=[".txt"], max_size_bytes=1000)
        with pytest.raises(PayloadTooLargeError):
            processor.process(b"a" * 1001, "big.txt", "text/plain")

    def test_payload_at_ceiling_is_accepted(self):
        processor = ContentProcessor(allowed_extensions=[".txt"], max_size_bytes=1000)
        processed = processor.process(b"a" * 1000, "edge.txt", "text/plain")
        processed.close()
        assert processed.size_bytes == 1000

    def test_image_left_alone_when_optimization_disabled(self, processor, jpeg_bytes):
        processed = processor.process(jpeg_bytes, "photo.jpg", "image/jpeg")
        try:
            assert processed.is_image is True
            assert processed.has_optimized_variant is False
            assert _read_all(processed.primary) == jpeg_bytes
        finally:
            processed.close()


class TestImageOptimization:
    def test_large_jpeg_is_resized_and_reencoded(self, optimizing_processor, jpeg_bytes):
        processed = optimizing_processor.process(jpeg_bytes, "site.jpg", "image/jpeg")
        try:
            assert processed.has_optimized_variant is True
            assert processed.optimization.format == "webp"
            assert processed.optimization.width <= 1920
            assert processed.optimization.height <= 1080
            assert (processed.optimization.width, processed.optimization.height) == (1440, 1080)

            primary = _read_all(processed.primary)
            assert processed.checksum == hashlib.sha256(primary).hexdigest()
            assert processed.primary_size_bytes == len(primary)
            with Image.open(io.BytesIO(primary)) as reopened:
                assert reopened.format == "WEBP"
                assert reopened.size == (1440, 1080)

            assert processed.original is not None
            assert _read_all(processed.original) == jpeg_bytes
            assert processed.size_bytes == len(jpeg_bytes)
        finally:
            processed.close()

    def test_original_dropped_when_not_preserved(self, jpeg_bytes):
        processor = ContentProcessor(
            allowed_extensions=[".jpg"],
            image_options=ImageOptimizationOptions(enabled=True, format="jpeg", preserve_original=False),
        )
        processed = processor.process(jpeg_bytes, "site.jpg", "image/jpeg")
        try:
            assert processed.has_optimized_variant is True
            assert processed.original is None
        finally:
            processed.close()

    def test_small_image_is_not_upscaled(self, optimizing_processor):
        buffer = io.BytesIO()
        Image.new("RGBA", (64, 48), (0, 0, 255, 128)).save(buffer, format="PNG")
        processed = optimizing_processor.process(buffer.getvalue(), "icon.png", "image/png")
        try:
            assert (processed.optimization.width, processed.optimization.height) == (64, 48)
        finally:
            processed.close()

    def test_corrupt_image_falls_back_to_original(self, optimizing_processor):
        garbage = b"\xff\xd8\xff\xe0 definitely not a jpeg" * 10
        processed = optimizing_processor.process(garbage, "broken.jpg", "image/jpeg")
        try:
            assert processed.has_optimized_variant is False
            assert processed.original is None
            assert _read_all(processed.primary) == garbage
            assert processed.checksum == hashlib.sha256(garbage).hexdigest()
        finally:
            processed.close()

    def test_unknown_target_format_falls_back_to_original(self, jpeg_bytes):
        processor = ContentProcessor(
            allowed_extensions=[".jpg"],
            image_options=ImageOptimizationOptions(enabled=True, format="avif-nope"),
        )
        processed = processor.process(jpeg_bytes, "site.jpg", "image/jpeg")
        try:
            assert processed.has_optimized_variant is False
            assert _read_all(processed.primary) == jpeg_bytes
        finally:
            processed.close()
