"""Upload session state machine and the values flowing through the pipeline."""

from enum import Enum
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, StrictBytes, StrictInt, StrictStr

from core.models.classified_error import ClassifiedError, ErrorKind
from core.models.errors import InvalidTransitionError
from core.utils.constants import (
    DEFAULT_VARIANT_FORMAT,
    FULL_MAX_DIMENSION,
    FULL_QUALITY,
    MEDIUM_MAX_DIMENSION,
    MEDIUM_QUALITY,
    THUMBNAIL_MAX_DIMENSION,
    THUMBNAIL_QUALITY,
)


class UploadState(str, Enum):
    """Orchestrator states."""

    IDLE = "idle"
    VALIDATING = "validating"
    GENERATING_VARIANTS = "generating_variants"
    UPLOADING_VARIANTS = "uploading_variants"
    FINALIZING = "finalizing"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


TERMINAL_STATES: Final[frozenset[UploadState]] = frozenset(
    {UploadState.COMMITTED, UploadState.FAILED}
)

ALLOWED_TRANSITIONS: Final[dict[UploadState, frozenset[UploadState]]] = {
    UploadState.IDLE: frozenset({UploadState.VALIDATING}),
    UploadState.VALIDATING: frozenset({UploadState.GENERATING_VARIANTS, UploadState.FAILED}),
    UploadState.GENERATING_VARIANTS: frozenset(
        {UploadState.UPLOADING_VARIANTS, UploadState.FAILED}
    ),
    UploadState.UPLOADING_VARIANTS: frozenset(
        {UploadState.FINALIZING, UploadState.ROLLING_BACK}
    ),
    # A rolled back upload phase may be restarted under a fresh session id
    UploadState.ROLLING_BACK: frozenset({UploadState.FAILED, UploadState.UPLOADING_VARIANTS}),
    UploadState.FINALIZING: frozenset({UploadState.COMMITTED, UploadState.FAILED}),
    UploadState.COMMITTED: frozenset(),
    UploadState.FAILED: frozenset(),
}


class VariantKind(str, Enum):
    """Resolution tier of a variant."""

    THUMBNAIL = "thumbnail"
    MEDIUM = "medium"
    FULL = "full"


class VariantStatus(str, Enum):
    """Upload status of a single variant."""

    PENDING = "pending"
    UPLOADING = "uploading"
    COMMITTED = "committed"
    FAILED = "failed"


class AvatarFile(BaseModel):
    """Raw file submitted by the user."""

    model_config = ConfigDict(frozen=True)

    content: StrictBytes = Field(..., description="Raw image bytes")
    content_type: StrictStr | None = Field(None, description="Declared MIME type")
    file_name: StrictStr | None = Field(None, description="Original file name")

    @property
    def byte_size(self) -> int:
        return len(self.content)


class SourceMeta(BaseModel):
    """Facts about the source image, read once per session."""

    model_config = ConfigDict(frozen=True)

    byte_size: StrictInt = Field(..., ge=0)
    mime_type: StrictStr
    pixel_width: StrictInt = Field(..., gt=0)
    pixel_height: StrictInt = Field(..., gt=0)


class VariantSpec(BaseModel):
    """Target size and encoding of one variant tier."""

    model_config = ConfigDict(frozen=True)

    kind: VariantKind
    max_dimension: StrictInt = Field(..., gt=0)
    format: StrictStr = DEFAULT_VARIANT_FORMAT
    quality: StrictInt = Field(85, ge=1, le=100)


DEFAULT_VARIANT_SPECS: Final[tuple[VariantSpec, ...]] = (
    VariantSpec(
        kind=VariantKind.THUMBNAIL,
        max_dimension=THUMBNAIL_MAX_DIMENSION,
        quality=THUMBNAIL_QUALITY,
    ),
    VariantSpec(
        kind=VariantKind.MEDIUM,
        max_dimension=MEDIUM_MAX_DIMENSION,
        quality=MEDIUM_QUALITY,
    ),
    VariantSpec(
        kind=VariantKind.FULL,
        max_dimension=FULL_MAX_DIMENSION,
        quality=FULL_QUALITY,
    ),
)


class VariantBlob(BaseModel):
    """Encoded variant ready for upload."""

    model_config = ConfigDict(frozen=True)

    kind: VariantKind
    data: StrictBytes
    content_type: StrictStr
    extension: StrictStr
    width: StrictInt
    height: StrictInt
    checksum: StrictStr = Field(..., description="SHA-256 of the encoded bytes")
    source_checksum: StrictStr = Field(..., description="SHA-256 of the decoded source")


class VariantState(BaseModel):
    """Per-variant upload bookkeeping inside a session."""

    status: VariantStatus = VariantStatus.PENDING
    remote_path: StrictStr | None = None
    url: StrictStr | None = None
    put_issued: bool = False
    checksum: StrictStr | None = None
    retry_counts: dict[ErrorKind, int] = Field(default_factory=dict)

    def record_retry(self, kind: ErrorKind) -> int:
        self.retry_counts[kind] = self.retry_counts.get(kind, 0) + 1
        return self.retry_counts[kind]


class ProgressEvent(BaseModel):
    """Progress notification delivered at stage boundaries."""

    model_config = ConfigDict(frozen=True)

    stage: UploadState
    percent: StrictInt = Field(..., ge=0, le=100)
    message: StrictStr


def _empty_variants() -> dict[VariantKind, VariantState]:
    return {kind: VariantState() for kind in VariantKind}


class UploadSession(BaseModel):
    """Ephemeral state of one upload attempt, owned by a single orchestrator call."""

    session_id: StrictStr
    user_id: StrictStr
    source_meta: SourceMeta | None = None
    variants: dict[VariantKind, VariantState] = Field(default_factory=_empty_variants)
    state: UploadState = UploadState.IDLE
    attempt: StrictInt = 1
    last_error: ClassifiedError | None = None
    history: list[UploadState] = Field(default_factory=lambda: [UploadState.IDLE])

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, target: UploadState) -> None:
        """Move to `target`, refusing edges the state machine does not define."""
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                message=f"Cannot move upload session from {self.state.value} to {target.value}",
                details={
                    "session_id": self.session_id,
                    "from": self.state.value,
                    "to": target.value,
                },
            )
        self.state = target
        self.history.append(target)

    def set_source_meta(self, meta: SourceMeta) -> None:
        if self.source_meta is not None:
            raise InvalidTransitionError(
                message="Source metadata is read once per session",
                details={"session_id": self.session_id},
            )
        self.source_meta = meta

    def fail(self, error: ClassifiedError) -> None:
        self.last_error = error
        self.transition(UploadState.FAILED)

    def committed_paths(self) -> list[str]:
        """Remote paths of variants whose upload completed in this attempt."""
        return [
            variant.remote_path
            for variant in self.variants.values()
            if variant.status is VariantStatus.COMMITTED and variant.remote_path
        ]

    def issued_paths(self) -> list[str]:
        """Remote paths this attempt wrote or may still write.

        Includes failed puts: a put abandoned after a timeout can land later.
        """
        return [
            variant.remote_path
            for variant in self.variants.values()
            if variant.remote_path
            and (variant.put_issued or variant.status is VariantStatus.COMMITTED)
        ]

    def restart(self, session_id: str) -> None:
        """Start a fresh upload attempt: new id, pending variants, reset retry counters."""
        self.transition(UploadState.UPLOADING_VARIANTS)
        self.session_id = session_id
        self.variants = _empty_variants()
        self.attempt += 1
