"""
Document storage: a local private copy plus an upload to S3.
"""
import os

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from carehub.core.config import StorageSettings
from carehub.utils import get_logger

log = get_logger(__name__)

CONSENT_KEY_PREFIX = "documents/consents"


class DocumentStorage:
    """
    Stores generated and uploaded documents.

    All methods block; callers run them with `asyncio.to_thread`.
    """

    def __init__(self, settings: StorageSettings):
        self.settings = settings
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.settings.region,
                aws_access_key_id=self.settings.access_key_id,
                aws_secret_access_key=self.settings.secret_access_key,
            )
        return self._client

    def save_local(self, file_name: str, data: bytes) -> str:
        os.makedirs(self.settings.local_dir, exist_ok=True)
        path = os.path.join(self.settings.local_dir, file_name)
        with open(path, "wb") as f:
            f.write(data)
        return path

    def upload(self, path: str, key: str) -> str | None:
        """Upload a file and return its URL, or None if the upload failed."""
        if not self.settings.bucket_name:
            log.warning("Upload of %s skipped: BUCKET_NAME not configured.", key)
            return None
        try:
            self.client.upload_file(
                path, self.settings.bucket_name, key,
                ExtraArgs={"ContentType": "application/pdf"},
            )
        except (Boto3Error, BotoCoreError, ClientError) as exc:
            log.error("S3 upload of %s failed: %s", key, exc)
            return None

        region = self.settings.region or "us-east-1"
        return f"https://{self.settings.bucket_name}.s3.{region}.amazonaws.com/{key}"

    def upload_with_retry(self, path: str, key: str) -> str | None:
        """Upload, trying once more if the first attempt returns no URL."""
        url = self.upload(path, key)
        if not url:
            log.info("Retrying upload of %s", key)
            url = self.upload(path, key)
        return url


def get_storage() -> DocumentStorage:
    return DocumentStorage(StorageSettings.from_env())
