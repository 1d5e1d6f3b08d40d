"""
Deliverable artifact storage — Cloudflare R2 with a local-directory fallback.

Keys are content-addressed by the aggregator, so writing the same key twice
is harmless and an unchanged deliverable keeps its path.
"""
import json
import logging
import os
from abc import ABC, abstractmethod

from app.config import R2_BUCKET_NAME, ARTIFACT_DIR

logger = logging.getLogger('services.artifacts')


class ArtifactStore(ABC):

    @abstractmethod
    def put_json(self, key: str, data: dict) -> str:
        """Persist data under key and return the stored artifact's path."""
        ...


class R2ArtifactStore(ArtifactStore):
    """Uploads through the 'r2' circuit breaker."""

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    def put_json(self, key: str, data: dict) -> str:
        from app.services.circuit_breaker import get_breaker
        body = json.dumps(data, indent=2, sort_keys=True, default=str).encode('utf-8')
        get_breaker('r2').call(
            self.client.put_object,
            Bucket=self.bucket, Key=key, Body=body, ContentType='application/json',
        )
        logger.info("Uploaded artifact to R2: %s", key)
        return f'r2://{self.bucket}/{key}'


class LocalArtifactStore(ArtifactStore):

    def __init__(self, root: str = ARTIFACT_DIR):
        self.root = root

    def put_json(self, key: str, data: dict) -> str:
        path = os.path.join(self.root, *key.split('/'))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp = path + '.tmp'
        with open(tmp, 'w') as f:
            json.dump(data, f, indent=2, sort_keys=True, default=str)
        os.replace(tmp, path)
        logger.info("Wrote artifact %s", path)
        return path


def get_artifact_store() -> ArtifactStore:
    """R2 when credentials are configured, local directory otherwise."""
    from app.extensions import r2_client
    if r2_client is not None and R2_BUCKET_NAME:
        return R2ArtifactStore(r2_client, R2_BUCKET_NAME)
    logger.warning("R2 not configured — writing deliverables under %s", ARTIFACT_DIR)
    return LocalArtifactStore(ARTIFACT_DIR)
