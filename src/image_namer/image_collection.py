"""Ordered collection of image entries and their lifecycle rules."""

import logging
from typing import Dict, Iterable, Iterator, List, Mapping, Set

from .errors import NotFoundError, ValidationError
from .models import ImageEntry, ImageStatus

logger = logging.getLogger(__name__)

# Legal status moves; completed and error are terminal.
ALLOWED_TRANSITIONS: Dict[ImageStatus, Set[ImageStatus]] = {
    ImageStatus.PENDING: {ImageStatus.PROCESSING},
    ImageStatus.PROCESSING: {ImageStatus.COMPLETED, ImageStatus.ERROR},
    ImageStatus.COMPLETED: set(),
    ImageStatus.ERROR: set(),
}

_UPDATABLE_FIELDS = {"suggested_name", "status", "error", "elapsed_millis"}


class ImageCollection:
    """Holds image entries in insertion order."""

    def __init__(self):
        self._entries: List[ImageEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ImageEntry]:
        return iter(list(self._entries))

    def __contains__(self, entry_id: object) -> bool:
        return any(entry.id == entry_id for entry in self._entries)

    def add(self, files: Iterable[Mapping[str, str]]) -> List[ImageEntry]:
        """
        Append one pending entry per submitted file.

        Args:
            files: Mappings with 'path' and 'name' keys

        Returns:
            The newly created entries, in submission order
        """
        new_entries = [
            ImageEntry(source_path=str(f["path"]), original_name=f["name"])
            for f in files
        ]
        self._entries.extend(new_entries)
        logger.debug("Added %d image(s), collection size %d", len(new_entries), len(self._entries))
        return new_entries

    def get(self, entry_id: str) -> ImageEntry:
        return self._entries[self._index_of(entry_id)]

    def update(self, entry_id: str, **fields) -> ImageEntry:
        """
        Merge fields into an entry.

        Raises:
            NotFoundError: If no entry has this id
            ValidationError: On an unknown field or an illegal status transition
        """
        index = self._index_of(entry_id)
        entry = self._entries[index]

        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        if "status" in fields:
            new_status = ImageStatus(fields["status"])
            if new_status != entry.status and new_status not in ALLOWED_TRANSITIONS[entry.status]:
                raise ValidationError(
                    f"Illegal status transition {entry.status.value} -> {new_status.value} "
                    f"for {entry.original_name}"
                )
            fields["status"] = new_status

        updated = entry.model_copy(update=fields)
        self._entries[index] = updated
        return updated

    def edit_suggested_name(self, entry_id: str, name: str) -> ImageEntry:
        """Apply a user edit of the suggested name; refused while the entry is processing."""
        entry = self.get(entry_id)
        if entry.status == ImageStatus.PROCESSING:
            raise ValidationError(f"{entry.original_name} is being processed and cannot be edited")
        return self.update(entry_id, suggested_name=name)

    def remove(self, entry_id: str) -> None:
        del self._entries[self._index_of(entry_id)]

    def clear(self) -> None:
        self._entries = []

    def with_status(self, status: ImageStatus) -> List[ImageEntry]:
        return [entry for entry in self._entries if entry.status == status]

    def pending(self) -> List[ImageEntry]:
        return self.with_status(ImageStatus.PENDING)

    def completed(self) -> List[ImageEntry]:
        return self.with_status(ImageStatus.COMPLETED)

    def errors(self) -> List[ImageEntry]:
        return self.with_status(ImageStatus.ERROR)

    def _index_of(self, entry_id: str) -> int:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        raise NotFoundError(f"No image entry with id {entry_id}")
