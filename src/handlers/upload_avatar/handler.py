"""
Lambda handler responsible for atomic avatar uploads.
"""

from http import HTTPStatus
import json
from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext
from pydantic import ValidationError as PydanticValidationError

from core.models.classified_error import ErrorKind
from core.models.errors import AvatarUploadError, SessionInProgressError, ValidationError
from core.utils.decorators import api_gateway_handler
from core.utils.response import ResponseBuilder
from core.utils.validators import sanitize_validation_errors, validate_request

from .models import AvatarUploadRequest, AvatarUploadResponse
from .service import AvatarUploadService

logger = Logger(UTC=True)
tracer = Tracer()
metrics = Metrics()

STATUS_BY_KIND: dict[ErrorKind, HTTPStatus] = {
    ErrorKind.FILE_TOO_LARGE: HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
    ErrorKind.UNSUPPORTED_FORMAT: HTTPStatus.UNSUPPORTED_MEDIA_TYPE,
    ErrorKind.CORRUPT_IMAGE: HTTPStatus.UNPROCESSABLE_ENTITY,
    ErrorKind.ENCODING_FAILURE: HTTPStatus.UNPROCESSABLE_ENTITY,
    ErrorKind.NETWORK_ERROR: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrorKind.TIMEOUT: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrorKind.PARTIAL_UPLOAD_FAILURE: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrorKind.QUOTA_EXCEEDED: HTTPStatus.TOO_MANY_REQUESTS,
    ErrorKind.FINALIZE_FAILURE: HTTPStatus.INTERNAL_SERVER_ERROR,
    ErrorKind.UNKNOWN: HTTPStatus.INTERNAL_SERVER_ERROR,
}


def status_for(exc: AvatarUploadError) -> HTTPStatus:
    if isinstance(exc, SessionInProgressError):
        return HTTPStatus.CONFLICT
    return STATUS_BY_KIND[exc.error.kind]


@api_gateway_handler
@tracer.capture_lambda_handler
@metrics.log_metrics()
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """
    Handle avatar upload requests.

    The handler decodes the base64 image, runs one atomic upload session
    (validate, generate three sizes, upload, link to the profile) and
    returns the committed URLs.

    Expected API Gateway event structure:
    {
        "body": "{...}",           # JSON string containing upload data
        "isBase64Encoded": false
    }

    Args:
        event: API Gateway Lambda proxy event containing the upload payload
        context: AWS Lambda execution context

    Returns:
        API Gateway-compatible HTTP response with the avatar URLs, or the
        classified error with a status matching its kind
    """
    logger.info(
        "Received avatar upload request",
        extra={
            "http_method": event.get("httpMethod"),
            "path": event.get("path"),
            "request_id": getattr(context, "aws_request_id", None),
            "function_name": getattr(context, "function_name", None),
        },
    )

    try:
        body = json.loads(event.get("body") or "{}")
    except json.JSONDecodeError as exc:
        logger.exception("Invalid JSON body received", exc_info=exc)
        return ResponseBuilder.bad_request(message="Invalid JSON body")

    try:
        request = validate_request(AvatarUploadRequest, body)
    except PydanticValidationError as exc:
        logger.error(
            "Request validation failed",
            extra={"errors": sanitize_validation_errors(exc.errors())},
        )
        return ResponseBuilder.bad_request(
            message="Invalid request params",
            details={"errors": sanitize_validation_errors(exc.errors())},
        )

    try:
        file_data = AvatarUploadService.decode_file(request.file)
    except ValidationError as exc:
        return ResponseBuilder.bad_request(message=exc.message)

    service = AvatarUploadService()
    try:
        urls = service.upload_avatar(
            user_id=request.user_id,
            file_data=file_data,
            content_type=request.content_type,
            file_name=request.file_name,
        )

    except AvatarUploadError as exc:
        status = status_for(exc)
        metrics.add_metric(name="AvatarUploadFailed", unit=MetricUnit.Count, value=1)
        metrics.add_metadata(key="error_kind", value=exc.error.kind.value)
        log = logger.error if status >= HTTPStatus.INTERNAL_SERVER_ERROR else logger.warning
        log(
            "Avatar upload failed",
            extra={
                "user_id": request.user_id,
                "error_kind": exc.error.kind.value,
                "error_code": exc.error_code,
                "retryable": exc.error.retryable,
                "details": exc.details,
            },
        )
        return ResponseBuilder.upload_failed(
            exc.error,
            status=status,
            error_code=exc.error_code if isinstance(exc, SessionInProgressError) else None,
        )

    finally:
        service.close()

    metrics.add_metric(name="AvatarUploadSucceeded", unit=MetricUnit.Count, value=1)
    response = AvatarUploadResponse.from_urls(request.user_id, urls)
    return ResponseBuilder.ok(response.model_dump())
