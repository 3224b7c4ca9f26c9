"""Persisted avatar record and the URL set returned to callers."""

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class AvatarUrls(BaseModel):
    """Public URLs of one committed avatar."""

    model_config = ConfigDict(frozen=True)

    thumbnail_url: StrictStr = Field(..., min_length=1, description="Thumbnail variant URL")
    medium_url: StrictStr = Field(..., min_length=1, description="Medium variant URL")
    full_url: StrictStr = Field(..., min_length=1, description="Full resolution variant URL")
    legacy_url: StrictStr = Field(
        ...,
        min_length=1,
        description="Single-avatar URL kept for backward compatibility (mirrors full_url)",
    )


class AvatarRecord(BaseModel):
    """Avatar fields of a user's profile record.

    Written only by the orchestrator's finalize step, always as a whole.
    """

    model_config = ConfigDict(frozen=True)

    user_id: StrictStr = Field(..., description="Owner user identifier")
    legacy_url: StrictStr | None = Field(None, description="Pre multi-tier avatar URL")
    thumbnail_url: StrictStr | None = Field(None, description="Thumbnail variant URL")
    medium_url: StrictStr | None = Field(None, description="Medium variant URL")
    full_url: StrictStr | None = Field(None, description="Full resolution variant URL")
    updated_at: StrictStr | None = Field(None, description="ISO-8601 last update timestamp (UTC)")

    def variant_urls(self) -> list[str]:
        """Return the distinct non-empty URLs held by the record."""
        urls = (self.thumbnail_url, self.medium_url, self.full_url, self.legacy_url)
        return list(dict.fromkeys(url for url in urls if url))
