"""
Remote object store client backed by MinIO's S3 SDK.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple
from urllib.parse import urlparse

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError

from shared.config import BaseConfig
from shared.errors import ConfigurationError, ObjectFetchError
from shared.logging import get_logger


@dataclass(frozen=True)
class ObjectMetadata:
    """Remote object metadata returned by every stat."""
    etag: str
    size: int
    last_modified: Optional[datetime]


def parse_endpoint(endpoint: str, secure: bool = True) -> Tuple[str, bool]:
    """Split an endpoint URL into the host:port MinIO expects and a TLS flag.

    ``AWS_ENDPOINT_URL_S3`` is usually a full URL; a bare host is accepted
    too, in which case ``secure`` is kept as configured.
    """
    endpoint = endpoint.strip()
    if "://" not in endpoint:
        return endpoint.rstrip("/"), secure
    parsed = urlparse(endpoint)
    return parsed.netloc, parsed.scheme == "https"


class ObjectStoreClient:
    """Authenticated reads of named objects from a single bucket."""

    def __init__(self, client: Minio, bucket: str):
        self.client = client
        self.bucket = bucket
        self.logger = get_logger("vehicle-cache.object_client")

    @classmethod
    def from_config(cls, config: BaseConfig) -> "ObjectStoreClient":
        """Build a client from environment configuration.

        Raises ConfigurationError when credentials, endpoint or bucket are
        missing, or when the SDK rejects them.
        """
        missing = [
            name for name, value in (
                ("AWS_ENDPOINT_URL_S3", config.s3_endpoint),
                ("AWS_ACCESS_KEY_ID", config.s3_access_key),
                ("AWS_SECRET_ACCESS_KEY", config.s3_secret_key),
                ("VT_S3_BUCKET", config.s3_bucket),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                "Object store is not configured",
                details={"missing": missing}
            )

        endpoint, secure = parse_endpoint(config.s3_endpoint, config.s3_secure)
        try:
            client = Minio(
                endpoint,
                access_key=config.s3_access_key,
                secret_key=config.s3_secret_key,
                secure=secure,
                region=config.s3_region,
            )
        except ValueError as e:
            raise ConfigurationError(
                "Invalid object store endpoint",
                details={"endpoint": endpoint, "error": str(e)}
            )

        instance = cls(client, config.s3_bucket)
        instance.logger.info(
            "Object store client configured",
            endpoint=endpoint,
            bucket=config.s3_bucket,
            secure=secure,
            region=config.s3_region,
        )
        return instance

    def stat(self, key: str) -> ObjectMetadata:
        """Fetch object metadata without downloading the body."""
        try:
            stat = self.client.stat_object(self.bucket, key)
        except (S3Error, HTTPError, OSError) as e:
            raise ObjectFetchError(key, str(e), details={"operation": "stat"}) from e
        return ObjectMetadata(
            etag=(stat.etag or "").strip('"'),
            size=int(stat.size or 0),
            last_modified=stat.last_modified,
        )

    def get(self, key: str) -> bytes:
        """Download the full object body."""
        try:
            response = self.client.get_object(self.bucket, key)
        except (S3Error, HTTPError, OSError) as e:
            raise ObjectFetchError(key, str(e), details={"operation": "get"}) from e
        try:
            return response.read()
        except (HTTPError, OSError) as e:
            raise ObjectFetchError(key, str(e), details={"operation": "read"}) from e
        finally:
            response.close()
            response.release_conn()
