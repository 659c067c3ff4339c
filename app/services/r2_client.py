import logging
from dataclasses import dataclass

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings
from app.errors import NotFound, PersistenceFailure

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    key: str
    content: bytes
    content_type: str

    @property
    def filename(self) -> str:
        return self.key.split("/")[-1]


class R2Storage:
    """Read access to the product files bucket on Cloudflare R2."""

    def __init__(self, s3_client, bucket: str):
        self.s3_client = s3_client
        self.bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "R2Storage":
        s3_client = boto3.client(
            "s3",
            endpoint_url=f"https://{settings.R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
            aws_access_key_id=settings.R2_ACCESS_KEY_ID,
            aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
            region_name="auto",
        )
        return cls(s3_client, settings.R2_BUCKET_NAME)

    def get_file(self, key: str) -> StoredFile:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            content = response["Body"].read()
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                logger.error(f"File not found in storage: {key}")
                raise NotFound("File not found")
            logger.exception(f"Storage download failed for {key}")
            raise PersistenceFailure()
        except BotoCoreError:
            logger.exception(f"Storage unreachable while fetching {key}")
            raise PersistenceFailure()

        return StoredFile(
            key=key,
            content=content,
            content_type=response.get("ContentType") or "application/octet-stream",
        )

    def presigned_url(self, key: str, expires: int = 900) -> str:
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": key,
                    "ResponseContentDisposition": (
                        f'attachment; filename="{key.split("/")[-1]}"'
                    ),
                },
                ExpiresIn=expires,
            )
        except (BotoCoreError, ClientError):
            logger.exception(f"Could not sign download URL for {key}")
            raise PersistenceFailure()
