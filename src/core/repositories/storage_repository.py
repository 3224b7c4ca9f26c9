"""Abstract contract for avatar variant storage."""

from abc import ABC, abstractmethod


class AvatarStorageRepository(ABC):
    """Contract for storing and deleting avatar variant objects.

    Implementations could be S3, GCS, local disk, etc.
    The orchestrator depends on this interface, not the implementation.
    Paths follow `avatars/{user_id}/{session_id}/{kind}.{ext}`.
    """

    @abstractmethod
    def put_object(self, *, path: str, body: bytes, content_type: str) -> str:
        """Store a variant and return its public URL.

        Args:
            path: Deterministic object path
            body: Encoded variant bytes
            content_type: MIME type (e.g., 'image/webp')

        Returns:
            Public URL of the stored object

        Raises:
            StorageError: If the upload fails (subclass tells timeout/quota/rejection apart)
        """

    @abstractmethod
    def delete_object(self, *, path: str) -> None:
        """Delete a variant by path. Deleting a missing object is not an error.

        Raises:
            StorageError: If deletion fails
        """

    @abstractmethod
    def resolve_path(self, url: str) -> str | None:
        """Map a public URL back to its object path.

        Returns:
            The path, or None when the URL does not point into this store
        """
