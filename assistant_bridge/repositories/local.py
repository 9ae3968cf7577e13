"""Local implementations of repositories for development and tests."""

import os
from pathlib import Path
from typing import Optional

from ..structured_logging import get_logger
from .base import BaseSecretRepository
from .document import DocumentRecordRepository, RecordTables

logger = get_logger("LOCAL_REPOSITORY")


class LocalSecretRepository(BaseSecretRepository):
    """Reads secrets from environment variables, ``openai-api-key-3`` -> ``OPENAI_API_KEY_3``."""

    @staticmethod
    def env_name(secret_suffix: str) -> str:
        return secret_suffix.upper().replace("-", "_")

    async def access_secret(self, secret_suffix: str) -> Optional[str]:
        value = os.getenv(self.env_name(secret_suffix), "").strip()
        return value or None


class LocalRecordRepository(DocumentRecordRepository):
    """In-memory record store, optionally snapshotted to a JSON file after every write."""

    def __init__(self, store_path: str = "") -> None:
        super().__init__()
        self._path = Path(store_path) if store_path else None
        self._tables = RecordTables()
        if self._path is not None and self._path.exists():
            self._tables = RecordTables.model_validate_json(self._path.read_text(encoding="utf-8"))
            logger.info(
                "Loaded local record store",
                path=str(self._path),
                configurations=len(self._tables.configurations),
                assistants=len(self._tables.assistants),
                files=len(self._tables.files),
            )

    async def _load(self) -> RecordTables:
        return self._tables

    async def _save(self, tables: RecordTables) -> None:
        self._tables = tables
        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(tables.model_dump_json(indent=2), encoding="utf-8")
