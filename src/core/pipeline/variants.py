"""Derives the thumbnail, medium and full variants from one decoded source."""

import hashlib
import io
import threading
from collections.abc import Sequence

from aws_lambda_powertools import Logger
from PIL import Image, ImageOps, UnidentifiedImageError

from core.models.errors import CorruptImageError, EncodingError, GenerationCancelledError
from core.models.session import DEFAULT_VARIANT_SPECS, VariantBlob, VariantSpec
from core.utils.constants import MIME_TYPE_EXTENSION_MAP, PIL_FORMAT_MIME_MAP

logger = Logger(UTC=True)

# Formats that cannot store an alpha channel
_OPAQUE_FORMATS = frozenset({"JPEG"})


class VariantGenerator:
    """CPU-bound resampling and re-encoding. No side effects outside the call."""

    def __init__(
        self,
        *,
        crop_square: bool = False,
        resample: Image.Resampling = Image.Resampling.LANCZOS,
    ) -> None:
        self.crop_square = crop_square
        self.resample = resample

    def generate(
        self,
        source_bytes: bytes,
        specs: Sequence[VariantSpec] = DEFAULT_VARIANT_SPECS,
        *,
        cancel_event: threading.Event | None = None,
    ) -> list[VariantBlob]:
        """Generate one blob per spec, in spec order.

        Raises:
            CorruptImageError: If the source cannot be decoded
            EncodingError: If any variant fails to resample or encode
            GenerationCancelledError: If `cancel_event` is set between variants
        """
        source_checksum = hashlib.sha256(source_bytes).hexdigest()
        source, source_format = self._decode(source_bytes)

        if self.crop_square:
            source = self._crop_to_square(source)

        blobs: list[VariantBlob] = []
        for spec in specs:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Variant generation cancelled", extra={"completed": len(blobs)})
                raise GenerationCancelledError(details={"completed": len(blobs)})

            try:
                blobs.append(self._render(source, spec, source_format, source_checksum))
            except EncodingError:
                raise
            except Exception as exc:
                logger.exception("Variant encoding failed", extra={"kind": spec.kind.value})
                raise EncodingError(
                    message=f"Failed to generate {spec.kind.value} size",
                    details={"kind": spec.kind.value},
                ) from exc

        logger.debug(
            "Variants generated",
            extra={"kinds": [blob.kind.value for blob in blobs], "source_checksum": source_checksum},
        )
        return blobs

    @staticmethod
    def _decode(source_bytes: bytes) -> tuple[Image.Image, str]:
        try:
            with Image.open(io.BytesIO(source_bytes)) as opened:
                source_format = opened.format or "PNG"
                opened.load()
                image = ImageOps.exif_transpose(opened)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
            raise CorruptImageError(
                message="Failed to load image",
                details={"reason": str(exc)},
            ) from exc

        if image.mode not in ("RGB", "RGBA"):
            has_alpha = image.mode in ("LA", "PA") or "transparency" in image.info
            image = image.convert("RGBA" if has_alpha else "RGB")

        return image, source_format

    @staticmethod
    def _crop_to_square(image: Image.Image) -> Image.Image:
        size = min(image.width, image.height)
        left = (image.width - size) // 2
        top = (image.height - size) // 2
        return image.crop((left, top, left + size, top + size))

    def _render(
        self,
        source: Image.Image,
        spec: VariantSpec,
        source_format: str,
        source_checksum: str,
    ) -> VariantBlob:
        resized = source.copy()
        # thumbnail() keeps the aspect ratio and never upscales
        resized.thumbnail((spec.max_dimension, spec.max_dimension), self.resample)

        data, image_format = self._encode(resized, spec, source_format)
        content_type = PIL_FORMAT_MIME_MAP[image_format]

        return VariantBlob(
            kind=spec.kind,
            data=data,
            content_type=content_type,
            extension=MIME_TYPE_EXTENSION_MAP[content_type][0],
            width=resized.width,
            height=resized.height,
            checksum=hashlib.sha256(data).hexdigest(),
            source_checksum=source_checksum,
        )

    def _encode(
        self,
        image: Image.Image,
        spec: VariantSpec,
        source_format: str,
    ) -> tuple[bytes, str]:
        """Encode to the target format, falling back once to the source format."""
        formats = [spec.format.upper()]
        fallback = source_format.upper()
        if fallback in PIL_FORMAT_MIME_MAP and fallback not in formats:
            formats.append(fallback)

        last_exc: Exception | None = None
        for image_format in formats:
            try:
                data = self._save(image, image_format, spec.quality)
            except (OSError, KeyError, ValueError) as exc:
                logger.warning(
                    "Failed to encode variant, trying next format",
                    extra={"kind": spec.kind.value, "format": image_format},
                )
                last_exc = exc
                continue

            if data:
                return data, image_format

        raise EncodingError(
            message="Failed to process image in any supported format",
            details={"kind": spec.kind.value, "formats": formats},
        ) from last_exc

    @staticmethod
    def _save(image: Image.Image, image_format: str, quality: int) -> bytes:
        if image_format in _OPAQUE_FORMATS and image.mode != "RGB":
            image = image.convert("RGB")

        buffer = io.BytesIO()
        image.save(buffer, format=image_format, quality=quality)
        return buffer.getvalue()
