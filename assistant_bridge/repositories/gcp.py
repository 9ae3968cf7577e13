"""Google Cloud Platform implementations of repositories."""

import asyncio
from typing import Optional

from google.api_core import exceptions as gcp_exceptions
from google.cloud import (  # type: ignore[attr-defined]
    secretmanager,
    storage,
)

from ..structured_logging import get_logger
from .base import BaseSecretRepository
from .document import DocumentRecordRepository, RecordTables

logger = get_logger("GCP_REPOSITORY")


class GCPSecretRepository(BaseSecretRepository):
    """GCP Secret Manager implementation."""

    def __init__(self, client_id: str, project_id: str):
        self._client = secretmanager.SecretManagerServiceClient()
        self._project_id = project_id
        self._client_id = client_id

    async def access_secret(self, secret_suffix: str) -> Optional[str]:
        return await asyncio.to_thread(self._read_secret, secret_suffix)

    def _read_secret(self, secret_suffix: str) -> Optional[str]:
        path = self._client.secret_version_path(
            project=self._project_id, secret=self.build_secret_name(secret_suffix), secret_version="latest"
        )
        try:
            response = self._client.access_secret_version(name=path)
        except gcp_exceptions.NotFound:
            return None
        secret = response.payload.data.decode("UTF-8").strip()
        return secret or None

    def build_secret_name(self, secret_suffix: str) -> str:
        return self._client_id + "-" + secret_suffix


class GCPRecordRepository(DocumentRecordRepository):
    """Keeps the record store as one JSON document in a GCS blob ``records/<client_id>.json``."""

    def __init__(self, client_id: str, project_id: str, bucket_name: str):
        super().__init__()
        client = storage.Client(project=project_id)
        self._blob = client.bucket(bucket_name).blob(f"records/{client_id}.json")

    def _read(self) -> RecordTables:
        if not self._blob.exists():
            return RecordTables()
        return RecordTables.model_validate_json(self._blob.download_as_text(encoding="utf-8"))

    def _write(self, tables: RecordTables) -> None:
        self._blob.upload_from_string(tables.model_dump_json(), content_type="application/json")

    async def _load(self) -> RecordTables:
        return await asyncio.to_thread(self._read)

    async def _save(self, tables: RecordTables) -> None:
        await asyncio.to_thread(self._write, tables)
        logger.debug("Record store written", blob=self._blob.name, next_id=tables.next_id)
