"""Report file storage: S3-compatible bucket or the local output directory."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

import boto3

from pricewatch.utils.urls import sign_download

logger = logging.getLogger(__name__)

REPORT_PREFIX = "reports/zzap"
OUTPUT_DIR = Path(os.environ.get("REPORT_OUTPUT_DIR", "artifacts/reports"))


class ReportStorage:
    def __init__(self, *, bucket: str | None = None, output_dir: Path | None = None, client=None) -> None:
        self.bucket = bucket
        self.output_dir = output_dir or OUTPUT_DIR
        self._client = client

    @classmethod
    def from_env(cls) -> "ReportStorage":
        return cls(bucket=os.environ.get("AWS_S3_BUCKET") or None)

    def _s3(self):
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                "s3",
                endpoint_url=os.environ.get("AWS_S3_ENDPOINT"),
                aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
                aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
            )
        return self._client

    def store(self, path: Path) -> str:
        """Persist a generated report and return its storage reference."""
        key = f"{REPORT_PREFIX}/{path.name}"
        if self.bucket:
            self._s3().upload_file(str(path), self.bucket, key)
            logger.info("Uploaded %s to s3://%s/%s", path.name, self.bucket, key)
            return f"s3://{self.bucket}/{key}"
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / path.name
        if path.resolve() != target.resolve():
            shutil.copyfile(path, target)
        return key

    def download_url(self, ref: str | None) -> str | None:
        if not ref:
            return None
        if ref.startswith("s3://"):
            bucket, _, key = ref[len("s3://"):].partition("/")
            return self._s3().generate_presigned_url(
                "get_object", Params={"Bucket": bucket, "Key": key}, ExpiresIn=3600
            )
        return sign_download(Path(ref).name)

    def local_path(self, name: str) -> Path | None:
        if "/" in name or "\\" in name or name.startswith("."):
            return None
        candidate = self.output_dir / name
        return candidate if candidate.is_file() else None
