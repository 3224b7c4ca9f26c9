"""Avatar Upload Service Package."""

__version__ = "1.0.0"
__author__ = "Bharat kumar"
__description__ = (
    "Atomic multi-resolution avatar uploads using AWS Lambda, S3, and DynamoDB"
)

__all__ = ["handlers", "core"]
