"""Image processing utilities for compressing and encoding."""

import base64
import io
import logging
from pathlib import Path
from typing import Dict

from PIL import Image

from .errors import ImageNamerError

logger = logging.getLogger(__name__)

# Share of the context window that the image may occupy
CONTEXT_BYTES_PER_TOKEN = 1024
IMAGE_CONTEXT_SHARE = 4

MIME_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.webp': 'image/webp',
    '.avif': 'image/avif',
}


class ImageProcessor:
    """Handles image compression and base64 encoding."""

    @staticmethod
    def max_image_bytes(context_length: int) -> int:
        """Byte budget for an image sent with the given context window."""
        return (context_length * CONTEXT_BYTES_PER_TOKEN) // IMAGE_CONTEXT_SHARE

    @staticmethod
    def compress(image_data: bytes, max_size: int) -> bytes:
        """
        Re-encode an image as JPEG until it fits within max_size bytes.

        Quality is lowered first, in steps of 5 from 95; if that is not
        enough the image is scaled down in steps of 10% at quality 85.

        Args:
            image_data: Raw image file contents
            max_size: Maximum allowed size in bytes

        Returns:
            JPEG bytes no larger than max_size

        Raises:
            ImageProcessingError: If the image cannot be decoded or made small enough
        """
        try:
            with Image.open(io.BytesIO(image_data)) as img:
                img.load()
                if img.mode != 'RGB':
                    img = img.convert('RGB')

                quality = 95
                while quality > 10:
                    buffer = io.BytesIO()
                    img.save(buffer, format='JPEG', quality=quality)
                    if buffer.tell() <= max_size:
                        logger.debug(
                            "Compressed image from %d to %d bytes (quality %d)",
                            len(image_data), buffer.tell(), quality
                        )
                        return buffer.getvalue()
                    quality -= 5

                width, height = img.size
                for step in range(9, 1, -1):
                    scale = step / 10
                    new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
                    resized_img = img.resize(new_size, Image.Resampling.LANCZOS)

                    buffer = io.BytesIO()
                    resized_img.save(buffer, format='JPEG', quality=85)
                    if buffer.tell() <= max_size:
                        logger.debug(
                            "Resized and compressed image from %d to %d bytes (scale %.1f)",
                            len(image_data), buffer.tell(), scale
                        )
                        return buffer.getvalue()

        except Exception as e:
            raise ImageProcessingError(f"Failed to process image: {e}") from e

        raise ImageProcessingError(f"Cannot compress image to {max_size} bytes")

    def encode_for_context(self, image_path: Path, context_length: int) -> str:
        """
        Read an image, shrink it to fit the context window and base64 encode it.

        Falls back to the original bytes when compression fails.
        """
        try:
            image_data = Path(image_path).read_bytes()
        except OSError as e:
            raise ImageProcessingError(f"Failed to read image {image_path}: {e}") from e

        max_size = self.max_image_bytes(context_length)
        try:
            payload = self.compress(image_data, max_size)
        except ImageProcessingError as e:
            logger.warning("Using original image for %s: %s", image_path, e)
            payload = image_data

        return base64.b64encode(payload).decode('utf-8')

    @staticmethod
    def read_image_preview(image_path: Path) -> str:
        """
        Read an image file as a data URL for display.

        Args:
            image_path: Path to the image file

        Returns:
            A 'data:<mime>;base64,...' string
        """
        path = Path(image_path)
        if not path.exists():
            raise ImageProcessingError(f"File does not exist: {path}")

        try:
            image_data = path.read_bytes()
        except OSError as e:
            raise ImageProcessingError(f"Failed to read image {path}: {e}") from e

        mime_type = MIME_TYPES.get(path.suffix.lower(), 'image/jpeg')
        encoded = base64.b64encode(image_data).decode('utf-8')
        return f"data:{mime_type};base64,{encoded}"

    @staticmethod
    def get_image_info(image_path: Path) -> Dict[str, str]:
        path = Path(image_path)
        try:
            size = f"{path.stat().st_size} bytes"
        except OSError:
            size = "Unknown"
        return {"filename": path.name, "size": size}


class ImageProcessingError(ImageNamerError):
    """Raised when image processing fails."""
    pass
