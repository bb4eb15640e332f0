"""Audio artifact storage.

Keys are ``{user_id}/{run_id}`` so concurrent runs for the same user never
share a key, and every store refuses to overwrite an existing object.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import boto3

from red_ai.config import Settings
from red_ai.errors import AudioStoreError
from red_ai.types import AudioArtifact, AudioStoreKind

logger = logging.getLogger(__name__)


def audio_storage_key(user_id: str, run_id: str) -> str:
    return f"{user_id}/{run_id}"


class AudioStore(Protocol):
    async def put(self, artifact: AudioArtifact, data: bytes, content_type: str) -> None:
        ...

    def url_for(self, key: str) -> str:
        ...


class InMemoryAudioStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.owners: dict[str, str] = {}

    async def put(self, artifact: AudioArtifact, data: bytes, content_type: str) -> None:
        if artifact.storage_key in self.objects:
            raise AudioStoreError(f"Audio object already exists: {artifact.storage_key}")
        self.objects[artifact.storage_key] = data
        self.owners[artifact.storage_key] = artifact.user_id

    def url_for(self, key: str) -> str:
        return f"memory://{key}"


class S3AudioStore:
    """boto3 S3 upload. Blocking calls run in a worker thread."""

    def __init__(self, settings: Settings, client: Any | None = None):
        if not settings.audio_bucket:
            raise ValueError("AUDIO_BUCKET must be set for the s3 audio store")
        self._bucket = settings.audio_bucket
        self._client = client or boto3.client("s3", region_name=settings.aws_region)

    async def put(self, artifact: AudioArtifact, data: bytes, content_type: str) -> None:
        def _upload() -> None:
            # IfNoneMatch="*": 이미 존재하는 key면 S3가 412로 거절한다
            self._client.put_object(
                Bucket=self._bucket,
                Key=artifact.storage_key,
                Body=data,
                ContentType=content_type,
                IfNoneMatch="*",
                Metadata={"user_id": artifact.user_id},
            )

        try:
            await asyncio.to_thread(_upload)
        except Exception as e:
            raise AudioStoreError(f"S3 upload failed for {artifact.storage_key}: {e}") from e
        logger.info("Uploaded %d bytes to s3://%s/%s", len(data), self._bucket, artifact.storage_key)

    def url_for(self, key: str) -> str:
        return f"https://{self._bucket}.s3.amazonaws.com/{key}"


def build_audio_store(settings: Settings) -> AudioStore:
    if settings.audio_store == AudioStoreKind.MEMORY:
        return InMemoryAudioStore()
    return S3AudioStore(settings)
