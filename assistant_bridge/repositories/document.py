"""Record repository kept as a single document of three tables."""

import abc
import asyncio
from typing import Optional, TypeVar

from pydantic import BaseModel, Field

from ..entities import Assistant, AssistantStatus, Configuration, FileRecord
from ..entities.errors import RecordNotFound
from ..entities.records import utcnow
from .base import BaseRecordRepository

RecordT = TypeVar("RecordT", Configuration, Assistant, FileRecord)


class RecordTables(BaseModel):
    """The whole record store. Ids are shared across tables and never reused."""

    next_id: int = 1
    configurations: dict[int, Configuration] = Field(default_factory=dict)
    assistants: dict[int, Assistant] = Field(default_factory=dict)
    files: dict[int, FileRecord] = Field(default_factory=dict)


def _most_recent(records: list[RecordT]) -> Optional[RecordT]:
    if not records:
        return None
    return max(records, key=lambda record: (record.touched_at, record.id))


class DocumentRecordRepository(BaseRecordRepository):
    """Implements the record operations as read-modify-write cycles over ``RecordTables``.

    Subclasses decide where the document lives.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @abc.abstractmethod
    async def _load(self) -> RecordTables:
        raise NotImplementedError

    @abc.abstractmethod
    async def _save(self, tables: RecordTables) -> None:
        raise NotImplementedError

    async def _insert(self, table: str, record: RecordT) -> RecordT:
        async with self._lock:
            tables = await self._load()
            now = utcnow()
            stored = record.model_copy(update={"id": tables.next_id, "created_at": now, "touched_at": now})
            getattr(tables, table)[stored.id] = stored
            tables.next_id += 1
            await self._save(tables)
            return stored.model_copy()

    async def _replace(self, table: str, kind: str, record: RecordT) -> RecordT:
        async with self._lock:
            tables = await self._load()
            rows = getattr(tables, table)
            if record.id not in rows:
                raise RecordNotFound(kind, record.id)
            stored = record.model_copy(update={"touched_at": utcnow()})
            rows[record.id] = stored
            await self._save(tables)
            return stored.model_copy()

    async def _fetch(self, table: str, record_id: int) -> Optional[RecordT]:
        async with self._lock:
            tables = await self._load()
            record = getattr(tables, table).get(record_id)
            return record.model_copy() if record is not None else None

    async def _remove(self, table: str, kind: str, record_id: int) -> None:
        async with self._lock:
            tables = await self._load()
            rows = getattr(tables, table)
            if record_id not in rows:
                raise RecordNotFound(kind, record_id)
            del rows[record_id]
            await self._save(tables)

    # Configurations

    async def create_configuration(self, configuration: Configuration) -> Configuration:
        return await self._insert("configurations", configuration)

    async def get_configuration(self, config_id: int) -> Optional[Configuration]:
        return await self._fetch("configurations", config_id)

    async def list_configurations(self) -> list[Configuration]:
        async with self._lock:
            tables = await self._load()
            return [record.model_copy() for record in tables.configurations.values()]

    async def update_configuration(self, configuration: Configuration) -> Configuration:
        return await self._replace("configurations", "Configuration", configuration)

    async def delete_configuration(self, config_id: int) -> None:
        async with self._lock:
            tables = await self._load()
            if config_id not in tables.configurations:
                raise RecordNotFound("Configuration", config_id)
            del tables.configurations[config_id]
            tables.assistants = {k: v for k, v in tables.assistants.items() if v.config_id != config_id}
            tables.files = {k: v for k, v in tables.files.items() if v.config_id != config_id}
            await self._save(tables)

    async def find_active_configuration(self) -> Optional[Configuration]:
        configurations = [record for record in await self.list_configurations() if record.api_key]
        return _most_recent(configurations)

    # Assistants

    async def create_assistant(self, assistant: Assistant) -> Assistant:
        return await self._insert("assistants", assistant)

    async def get_assistant(self, assistant_id: int) -> Optional[Assistant]:
        return await self._fetch("assistants", assistant_id)

    async def list_assistants(self, config_id: int) -> list[Assistant]:
        async with self._lock:
            tables = await self._load()
            return [record.model_copy() for record in tables.assistants.values() if record.config_id == config_id]

    async def update_assistant(self, assistant: Assistant) -> Assistant:
        return await self._replace("assistants", "Assistant", assistant)

    async def delete_assistant(self, assistant_id: int) -> None:
        await self._remove("assistants", "Assistant", assistant_id)

    async def find_active_assistant(self, config_id: int) -> Optional[Assistant]:
        assistants = await self.list_assistants(config_id)
        return _most_recent([record for record in assistants if record.status == AssistantStatus.ACTIVE])

    # Files

    async def create_file(self, file_record: FileRecord) -> FileRecord:
        return await self._insert("files", file_record)

    async def get_file(self, file_id: int) -> Optional[FileRecord]:
        return await self._fetch("files", file_id)

    async def list_files(self, config_id: int) -> list[FileRecord]:
        async with self._lock:
            tables = await self._load()
            return [record.model_copy() for record in tables.files.values() if record.config_id == config_id]

    async def update_file(self, file_record: FileRecord) -> FileRecord:
        return await self._replace("files", "File", file_record)

    async def delete_file(self, file_id: int) -> None:
        await self._remove("files", "File", file_id)
