"""Abstract contract for the avatar fields of profile records."""

from abc import ABC, abstractmethod

from core.models.avatar import AvatarRecord, AvatarUrls


class AvatarProfileRepository(ABC):
    """Contract for reading and finalizing a user's avatar record.

    Implementations could be DynamoDB, PostgreSQL, Supabase, etc.
    """

    @abstractmethod
    def fetch_avatar(self, *, user_id: str) -> AvatarRecord | None:
        """Fetch the current avatar record.

        Returns:
            The record, or None if the user never committed an avatar

        Raises:
            ProfileStoreError: If the fetch fails
        """

    @abstractmethod
    def update_avatar_urls(self, *, user_id: str, urls: AvatarUrls) -> AvatarRecord:
        """Link all avatar URLs to the profile in a single write.

        The write either applies every field or none of them.

        Returns:
            The record as written

        Raises:
            ProfileStoreError: If the write fails
        """
