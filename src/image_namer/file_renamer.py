"""File naming and renaming utilities."""

import logging
from pathlib import Path
from typing import Iterable, List, Set

from .errors import ImageNamerError, RenameError
from .models import RenameRequest

logger = logging.getLogger(__name__)

# Supported image extensions
SUPPORTED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp', '.bmp', '.tiff', '.tif', '.avif'}

MAX_NAME_LENGTH = 100
_DROPPED_CHARS = '\n\r"'
_REPLACED_CHARS = '/\\:*?<>|'


class FileRenamer:
    """Handles file renaming operations with safety checks."""

    @staticmethod
    def clean_filename(raw_name: str) -> str:
        """
        Turn a model reply into a usable file name (without extension).

        Args:
            raw_name: Text returned by the model or typed by the user

        Returns:
            The name with line breaks and quotes removed, path-unsafe
            characters replaced by underscores, at most 100 characters
        """
        cleaned = raw_name.strip()
        for char in _DROPPED_CHARS:
            cleaned = cleaned.replace(char, '')
        for char in _REPLACED_CHARS:
            cleaned = cleaned.replace(char, '_')
        return cleaned[:MAX_NAME_LENGTH]

    @staticmethod
    def get_safe_filename(base_name: str, extension: str, target_dir: Path) -> str:
        """
        Generate a unique filename that doesn't conflict with existing files.

        Args:
            base_name: Base filename (without extension)
            extension: File extension (e.g., '.jpg')
            target_dir: Directory where file will be created

        Returns:
            Unique filename with extension
        """
        counter = 1
        while True:
            if counter == 1:
                new_name = f"{base_name}{extension}"
            else:
                new_name = f"{base_name}_{counter}{extension}"

            if not (target_dir / new_name).exists():
                return new_name

            counter += 1

    def target_path(self, request: RenameRequest) -> Path:
        """Path a rename request would produce, keeping the original extension."""
        old_path = Path(request.original_path)
        base_name = self.clean_filename(request.new_name)
        if not base_name:
            raise RenameError(f"Empty new name for {old_path}")

        if f"{base_name}{old_path.suffix}" == old_path.name:
            return old_path
        return old_path.with_name(
            self.get_safe_filename(base_name, old_path.suffix, old_path.parent)
        )

    def apply_rename_batch(self, requests: Iterable[RenameRequest]) -> List[Path]:
        """
        Rename files in order, stopping at the first failure.

        Args:
            requests: Source paths and their new names (without extension)

        Returns:
            The new paths, in request order

        Raises:
            RenameError: If a source file is missing or an OS error occurs
        """
        renamed = []
        for request in requests:
            old_path = Path(request.original_path)
            if not old_path.exists():
                raise RenameError(f"File does not exist: {old_path}")

            new_path = self.target_path(request)
            if new_path == old_path:
                renamed.append(new_path)
                continue

            try:
                old_path.rename(new_path)
            except OSError as e:
                raise RenameError(f"Failed to rename {old_path}: {e}") from e

            logger.info("Renamed %s -> %s", old_path.name, new_path.name)
            renamed.append(new_path)

        return renamed

    @staticmethod
    def find_images(directory: Path, supported_extensions: Set[str] = SUPPORTED_EXTENSIONS) -> List[Path]:
        """
        Find all image files in a directory.

        Args:
            directory: Directory to search
            supported_extensions: Set of supported file extensions

        Returns:
            List of image file paths, sorted by name
        """
        if not directory.exists() or not directory.is_dir():
            raise DirectoryNotFoundError(f"{directory} is not a valid directory")

        return sorted(
            f for f in directory.iterdir()
            if f.is_file() and f.suffix.lower() in supported_extensions
        )


class DirectoryNotFoundError(ImageNamerError):
    """Raised when directory doesn't exist."""
    pass
