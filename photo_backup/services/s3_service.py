"""S3 service for managing AWS S3 operations."""

import os
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from mypy_boto3_s3 import S3Client

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".heic": "image/heic",
    ".svg": "image/svg+xml",
}


def create_s3_client(profile: str, region: str = "us-west-2") -> S3Client:
    """Create an S3 client using the specified AWS profile.

    Args:
        profile: AWS profile name from ~/.aws/credentials or ~/.aws/config
        region: AWS region (default: us-west-2)

    Returns:
        Configured S3 client

    Raises:
        ProfileNotFound: If the profile does not exist
    """
    session = boto3.Session(profile_name=profile, region_name=region)
    client: S3Client = session.client("s3")
    return client


def guess_content_type(filename: str) -> str:
    """Content type for a file name, based on its extension only."""
    return CONTENT_TYPES.get(os.path.splitext(filename)[1].lower(), DEFAULT_CONTENT_TYPE)


def build_object_key(relative_path: str, prefix: str | None = None) -> str:
    """Build the object key for a file below an optional key prefix."""
    clean_prefix = (prefix or "").strip("/")
    return f"{clean_prefix}/{relative_path}" if clean_prefix else relative_path


def upload_bytes(
    client: S3Client,
    bucket: str,
    key: str,
    data: bytes,
    content_type: str = DEFAULT_CONTENT_TYPE,
) -> dict[str, Any]:
    """Upload an in-memory object to S3.

    Args:
        client: S3 client
        bucket: S3 bucket name
        key: S3 object key
        data: Object contents
        content_type: MIME type stored with the object

    Returns:
        Dictionary with upload result information
    """
    try:
        client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
        return {
            "success": True,
            "bucket": bucket,
            "key": key,
            "size": len(data),
            "error": None,
        }
    except (ClientError, BotoCoreError) as e:
        return {
            "success": False,
            "bucket": bucket,
            "key": key,
            "size": len(data),
            "error": str(e),
        }


def validate_bucket_access(client: S3Client, bucket: str) -> dict[str, Any]:
    """Validate that we can access the specified S3 bucket.

    Args:
        client: S3 client
        bucket: S3 bucket name

    Returns:
        Dictionary with validation result
    """
    try:
        client.head_bucket(Bucket=bucket)
        return {"success": True, "bucket": bucket, "error": None}
    except ClientError as e:
        error_code = e.response["Error"]["Code"]
        if error_code == "404":
            error_msg = f"Bucket '{bucket}' does not exist"
        elif error_code == "403":
            error_msg = f"Access denied to bucket '{bucket}'"
        else:
            error_msg = str(e)
        return {"success": False, "bucket": bucket, "error": error_msg}
    except NoCredentialsError:
        return {"success": False, "bucket": bucket, "error": "AWS credentials not found"}
