"""Rejects unacceptable uploads before any I/O or CPU-heavy work."""

import io

from aws_lambda_powertools import Logger
from PIL import Image, UnidentifiedImageError

from core.models.errors import CorruptImageError, FileSizeError, MIMETypeError
from core.models.session import AvatarFile, SourceMeta
from core.utils.constants import (
    ALLOWED_MIME_TYPES,
    MAX_FILE_SIZE,
    MAX_PIXEL_DIMENSION,
    format_file_size,
    get_max_file_size_mb,
)
from core.utils.mime import detect_mime_type

logger = Logger(UTC=True)


class ImageValidator:
    """Pure checks on a submitted file: size, format, then dimensions."""

    def __init__(
        self,
        *,
        max_file_size: int = MAX_FILE_SIZE,
        max_pixel_dimension: int = MAX_PIXEL_DIMENSION,
        allowed_mime_types: frozenset[str] = ALLOWED_MIME_TYPES,
    ) -> None:
        self.max_file_size = max_file_size
        self.max_pixel_dimension = max_pixel_dimension
        self.allowed_mime_types = allowed_mime_types

    def validate(self, file: AvatarFile) -> SourceMeta:
        """Validate the file and return its source metadata.

        Raises:
            FileSizeError: If the file is larger than the limit
            MIMETypeError: If the declared or detected type is not an allowed raster format
            CorruptImageError: If the file is empty or its dimensions cannot be read or are out of range
        """
        byte_size = file.byte_size

        if byte_size > self.max_file_size:
            logger.warning(
                "File size exceeds limit",
                extra={"byte_size": byte_size, "max_file_size": self.max_file_size},
            )
            raise FileSizeError(
                message=(
                    f"File too large ({format_file_size(byte_size)}). "
                    f"Maximum size is {get_max_file_size_mb(self.max_file_size)}MB"
                ),
                details={"byte_size": byte_size, "max_file_size": self.max_file_size},
            )

        if byte_size == 0:
            raise CorruptImageError(message="File is empty", details={"byte_size": 0})

        mime_type = self._check_mime_type(file)
        width, height = self._read_dimensions(file.content)

        logger.debug(
            "Upload validated",
            extra={"mime_type": mime_type, "width": width, "height": height},
        )
        return SourceMeta(
            byte_size=byte_size,
            mime_type=mime_type,
            pixel_width=width,
            pixel_height=height,
        )

    def _check_mime_type(self, file: AvatarFile) -> str:
        allowed = ", ".join(sorted(self.allowed_mime_types))

        declared = (file.content_type or "").split(";")[0].strip().lower()
        if declared and declared not in self.allowed_mime_types:
            raise MIMETypeError(
                message=f"Unsupported file type. Please use: {allowed}",
                details={"mime_type": declared},
            )

        try:
            detected = detect_mime_type(file.content)
        except ValueError as exc:
            raise MIMETypeError(
                message=f"Unsupported file type. Please use: {allowed}",
                details={"mime_type": declared or None},
            ) from exc

        if detected not in self.allowed_mime_types:
            raise MIMETypeError(
                message=f"Unsupported file type. Please use: {allowed}",
                details={"mime_type": detected},
            )

        return detected

    def _read_dimensions(self, content: bytes) -> tuple[int, int]:
        # Image.open only parses the header; pixel data stays undecoded
        try:
            with Image.open(io.BytesIO(content)) as image:
                width, height = image.size
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
            raise CorruptImageError(
                message="Failed to load image",
                details={"reason": str(exc)},
            ) from exc

        if width <= 0 or height <= 0:
            raise CorruptImageError(
                message="Image has no pixels",
                details={"width": width, "height": height},
            )

        if width > self.max_pixel_dimension or height > self.max_pixel_dimension:
            raise CorruptImageError(
                message=(
                    f"Image dimensions {width}x{height} exceed the "
                    f"{self.max_pixel_dimension}px limit"
                ),
                details={"width": width, "height": height},
            )

        return width, height
