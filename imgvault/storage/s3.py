import boto3
from typing import Any, Dict, List, Optional
from botocore.exceptions import ClientError
from imgvault.settings import settings
import logging

log = logging.getLogger(__name__)

# S3 reports this version id for objects written while versioning was off
NULL_VERSION = "null"

# -------------------------
# S3 Service
# -------------------------
class S3Service:
    def __init__(self, bucket: Optional[str] = None):
        self.bucket = bucket or settings.s3_bucket
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.client = session.client("s3", **kwargs)
        log.info("Initialized S3 client")

        # Ensure bucket exists at initialization
        self.ensure_bucket()
        if settings.s3_enable_versioning:
            self.enable_versioning()

    def ensure_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
            log.debug("Bucket %s already exists", self.bucket)
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            if error_code in ("404", "NoSuchBucket"):
                kwargs = {"Bucket": self.bucket}
                if settings.aws_region != "us-east-1":
                    kwargs["CreateBucketConfiguration"] = {"LocationConstraint": settings.aws_region}
                self.client.create_bucket(**kwargs)
                log.info("Created bucket %s", self.bucket)
            else:
                log.error("Failed to check/create bucket: %s", e)
                raise

    def enable_versioning(self):
        resp = self.client.get_bucket_versioning(Bucket=self.bucket)
        if resp.get("Status") == "Enabled":
            return
        self.client.put_bucket_versioning(
            Bucket=self.bucket,
            VersioningConfiguration={"Status": "Enabled"},
        )
        log.info("Enabled versioning on bucket %s", self.bucket)

    def put(self, data: bytes, key: str, content_type: str) -> Optional[str]:
        """
            Uploads data under key and returns the object's version id,
            or None when the bucket does not version objects.
        """
        resp = self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        log.debug("Uploaded %s to s3://%s/%s", key, self.bucket, key)
        version = resp.get("VersionId")
        if not version or version == NULL_VERSION:
            return None
        return version

    def get(self, key: str, version: Optional[str] = None) -> Dict[str, Any]:
        """
            Fetches one revision of an object. The caller reads resp["Body"].
            A version id that no longer exists raises ClientError.
        """
        kwargs = {"Bucket": self.bucket, "Key": key}
        if version:
            kwargs["VersionId"] = version
        resp = self.client.get_object(**kwargs)
        log.debug("Fetched s3://%s/%s (version %s)", self.bucket, key, version)
        return resp

    def list(self, prefix: str) -> List[Dict[str, Any]]:
        """Lists every object under prefix, following continuation tokens."""
        objects: List[Dict[str, Any]] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            objects.extend(page.get("Contents", []))
        log.debug("Listed %d objects under s3://%s/%s", len(objects), self.bucket, prefix)
        return objects

    def delete(self, key: str):
        self.client.delete_object(Bucket=self.bucket, Key=key)
        log.debug("Deleted s3://%s/%s", self.bucket, key)

    def close(self):
        self.client.close()
        log.info("Closed S3 client")
