import asyncio

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError
from PIL import UnidentifiedImageError

from core.models.classified_error import ErrorKind
from core.models.errors import (
    AvatarUploadError,
    CorruptImageError,
    EncodingError,
    FileSizeError,
    MIMETypeError,
    ProfileStoreError,
    StorageError,
    StorageQuotaError,
    StorageRejectedError,
    StorageTimeoutError,
)
from core.pipeline.classifier import RETRY_POLICIES, ErrorClassifier


def client_error(code: str, status: int = 400) -> ClientError:
    return ClientError(
        {"Error": {"Code": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "PutObject",
    )


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


class TestRetryPolicies:
    def test_every_kind_has_a_policy(self) -> None:
        assert set(RETRY_POLICIES) == set(ErrorKind)

    @pytest.mark.parametrize(
        ("kind", "max_retries", "delay_ms"),
        [
            (ErrorKind.NETWORK_ERROR, 3, 500),
            (ErrorKind.TIMEOUT, 3, 1000),
            (ErrorKind.QUOTA_EXCEEDED, 1, 5000),
            (ErrorKind.PARTIAL_UPLOAD_FAILURE, 2, 1000),
        ],
    )
    def test_retryable_kinds(self, kind, max_retries, delay_ms) -> None:
        error = ErrorClassifier.build(kind)

        assert error.retryable is True
        assert error.max_retries == max_retries
        assert error.retry_delay_ms == delay_ms

    @pytest.mark.parametrize(
        "kind",
        [
            ErrorKind.FILE_TOO_LARGE,
            ErrorKind.UNSUPPORTED_FORMAT,
            ErrorKind.CORRUPT_IMAGE,
            ErrorKind.ENCODING_FAILURE,
            ErrorKind.FINALIZE_FAILURE,
            ErrorKind.UNKNOWN,
        ],
    )
    def test_terminal_kinds(self, kind) -> None:
        error = ErrorClassifier.build(kind)

        assert error.retryable is False
        assert error.max_retries == 0
        assert error.remediation


class TestClassify:
    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (FileSizeError(message="too big"), ErrorKind.FILE_TOO_LARGE),
            (MIMETypeError(message="bmp"), ErrorKind.UNSUPPORTED_FORMAT),
            (CorruptImageError(message="bad"), ErrorKind.CORRUPT_IMAGE),
            (UnidentifiedImageError("nope"), ErrorKind.CORRUPT_IMAGE),
            (EncodingError(message="webp"), ErrorKind.ENCODING_FAILURE),
            (StorageTimeoutError(message="slow"), ErrorKind.TIMEOUT),
            (StorageQuotaError(message="busy"), ErrorKind.QUOTA_EXCEEDED),
            (StorageRejectedError(message="denied"), ErrorKind.UNKNOWN),
            (StorageError(message="reset"), ErrorKind.NETWORK_ERROR),
            (ProfileStoreError(message="db"), ErrorKind.FINALIZE_FAILURE),
            (asyncio.TimeoutError(), ErrorKind.TIMEOUT),
            (ReadTimeoutError(endpoint_url="https://s3"), ErrorKind.TIMEOUT),
            (EndpointConnectionError(endpoint_url="https://s3"), ErrorKind.NETWORK_ERROR),
            (ConnectionResetError(), ErrorKind.NETWORK_ERROR),
            (RuntimeError("???"), ErrorKind.UNKNOWN),
        ],
    )
    def test_exception_mapping(self, classifier, exc, kind) -> None:
        assert classifier.classify(exc).kind is kind

    @pytest.mark.parametrize(
        ("code", "status", "kind"),
        [
            ("SlowDown", 503, ErrorKind.QUOTA_EXCEEDED),
            ("Throttling", 400, ErrorKind.QUOTA_EXCEEDED),
            ("RequestTimeout", 400, ErrorKind.TIMEOUT),
            ("InternalError", 500, ErrorKind.NETWORK_ERROR),
            ("ServiceUnavailable", 503, ErrorKind.NETWORK_ERROR),
            ("AccessDenied", 403, ErrorKind.UNKNOWN),
        ],
    )
    def test_client_error_mapping(self, classifier, code, status, kind) -> None:
        error = classifier.classify(client_error(code, status))

        assert error.kind is kind
        assert error.details["aws_error_code"] == code

    def test_domain_message_is_kept(self, classifier) -> None:
        error = classifier.classify(FileSizeError(message="File too large (6.0 MB)"))

        assert error.message == "File too large (6.0 MB)"

    def test_classified_error_passes_through(self, classifier) -> None:
        original = ErrorClassifier.build(ErrorKind.FINALIZE_FAILURE, details={"session_id": "ses_1"})

        assert classifier.classify(AvatarUploadError(original)) is original


class TestBackoff:
    def test_delay_doubles_per_attempt(self, classifier) -> None:
        error = ErrorClassifier.build(ErrorKind.NETWORK_ERROR)

        assert [classifier.retry_delay_ms(error, n) for n in (1, 2, 3)] == [500, 1000, 2000]

    def test_delay_is_capped(self) -> None:
        classifier = ErrorClassifier(max_retry_delay_ms=8000)
        error = ErrorClassifier.build(ErrorKind.QUOTA_EXCEEDED)

        assert classifier.retry_delay_ms(error, 1) == 5000
        assert classifier.retry_delay_ms(error, 2) == 8000

    def test_can_retry_respects_budget(self) -> None:
        error = ErrorClassifier.build(ErrorKind.QUOTA_EXCEEDED)

        assert ErrorClassifier.can_retry(error, 0) is True
        assert ErrorClassifier.can_retry(error, 1) is False

    def test_terminal_errors_never_retry(self) -> None:
        error = ErrorClassifier.build(ErrorKind.CORRUPT_IMAGE)

        assert ErrorClassifier.can_retry(error, 0) is False
