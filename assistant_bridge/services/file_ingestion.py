"""Validation, upload and indexing of local files into a configuration's vector store."""

from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

from openai import OpenAIError

from ..entities import FileEvent, FileRecord, FileStatus, UploadError, UploadReport, transition_file
from ..entities.config import DEFAULT_ALLOWED_EXTENSIONS, DEFAULT_MAX_FILE_SIZE
from ..entities.errors import (
    AssistantBridgeError,
    FileNotFound,
    NoConfiguration,
    RecordNotFound,
    TooLarge,
    UnsupportedType,
)
from ..infrastructure import OpenAIClientFactory
from ..repositories import BaseRecordRepository
from ..structured_logging import get_logger
from .credentials import CredentialResolver
from .idempotency import IdempotencyCache
from .knowledge_store import KnowledgeStoreProvisioner
from .openai_helpers import delete_remote

logger = get_logger("FILE_INGESTION")


class FileResolver:
    """Maps file references to files below the upload root."""

    def __init__(self, upload_root: str) -> None:
        self.root = Path(upload_root).resolve()

    def resolve(self, ref: str) -> Path:
        candidate = (self.root / ref).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise FileNotFound(ref)
        if not candidate.is_file():
            raise FileNotFound(ref)
        return candidate


class FileIngestionPipeline:
    """Uploads a batch of files. One file failing never aborts the batch.

    The first file of the batch fills the initiating record, every later file
    gets a new record under the same configuration.
    """

    def __init__(
        self,
        records: BaseRecordRepository,
        credentials: CredentialResolver,
        knowledge_store: KnowledgeStoreProvisioner,
        client_factory: OpenAIClientFactory,
        resolver: FileResolver,
        allowed_extensions: Optional[Sequence[str]] = None,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ) -> None:
        self.records = records
        self.credentials = credentials
        self.knowledge_store = knowledge_store
        self.client_factory = client_factory
        self.resolver = resolver
        self.allowed_extensions = {
            ext.lower().lstrip(".") for ext in (allowed_extensions or DEFAULT_ALLOWED_EXTENSIONS)
        }
        self.max_file_size = max_file_size

    def validate(self, ref: str) -> Path:
        """Resolve and check one reference before anything is sent to OpenAI."""
        path = self.resolver.resolve(ref)
        extension = path.suffix.lower().lstrip(".")
        if extension not in self.allowed_extensions:
            raise UnsupportedType(path.name, extension)
        size = path.stat().st_size
        if size > self.max_file_size:
            raise TooLarge(path.name, size, self.max_file_size)
        return path

    async def ingest(
        self,
        config_id: int,
        file_refs: Sequence[str],
        initiating_file_id: int,
        idempotency_key: Optional[str] = None,
        cache: Optional[IdempotencyCache] = None,
    ) -> UploadReport:
        """Upload every referenced file and attach it to the configuration's vector store.

        A repeated ``idempotency_key`` within the cache's lifetime returns the first report
        without touching OpenAI or the record store. Concurrent calls with the same key
        wait for the first one to finish.
        """
        if not idempotency_key or cache is None:
            return await self._ingest_batch(config_id, file_refs, initiating_file_id)

        async with cache.hold(idempotency_key):
            cached = await cache.get(idempotency_key)
            if cached is not None:
                return cached
            report = await self._ingest_batch(config_id, file_refs, initiating_file_id)
            await cache.set(idempotency_key, report)
            return report

    async def _ingest_batch(self, config_id: int, file_refs: Sequence[str], initiating_file_id: int) -> UploadReport:
        configuration = await self.records.get_configuration(config_id)
        if configuration is None:
            raise NoConfiguration()
        initiating = await self.records.get_file(initiating_file_id)
        if initiating is None:
            raise RecordNotFound("File", initiating_file_id)

        # a re-submitted record replaces its previous upload
        replaced_file_id = None
        if initiating.status in (FileStatus.UPLOADED, FileStatus.COMPLETED):
            replaced_file_id = initiating.openai_file_id
            initiating = await self.records.update_file(
                initiating.with_event(FileEvent.START, openai_file_id=None, file_size=0)
            )
        elif initiating.status in (FileStatus.FAILED, FileStatus.ERROR):
            initiating = await self.records.update_file(initiating.with_event(FileEvent.START))

        api_key = await self.credentials.resolve(configuration)
        client = self.client_factory.create_client(api_key)
        report = UploadReport(record_id=initiating.id)
        try:
            vector_store_id = await self.knowledge_store.ensure(config_id, client=client)
            if replaced_file_id:
                await self._delete_replaced(client, replaced_file_id)
            for ref in file_refs:
                if not ref:
                    continue
                initiating = await self._ingest_one(client, config_id, vector_store_id, ref, initiating, report)
        finally:
            await client.close()

        logger.info(
            "File upload process completed",
            config_id=config_id,
            total_files=len(file_refs),
            successful_uploads=report.succeeded,
            failed_uploads=report.failed,
            uploaded_file_ids=report.file_ids,
        )
        return report

    async def _delete_replaced(self, client: Any, openai_file_id: str) -> None:
        try:
            await delete_remote("file", openai_file_id, partial(client.files.delete, openai_file_id))
        except OpenAIError as err:
            logger.warning(
                "Failed to delete replaced file, left on OpenAI",
                openai_file_id=openai_file_id,
                error_type=type(err).__name__,
                error=str(err),
            )

    async def _write(self, write: Callable[[], Awaitable[FileRecord]], ref: str) -> Optional[FileRecord]:
        """Persist a record change. A failed write is logged and never aborts the batch."""
        try:
            return await write()
        except Exception as err:  # noqa: BLE001
            logger.error("Failed to record file status", file_ref=ref, error_type=type(err).__name__, error=str(err))
            return None

    async def _ingest_one(
        self,
        client: Any,
        config_id: int,
        vector_store_id: str,
        ref: str,
        initiating: Optional[FileRecord],
        report: UploadReport,
    ) -> Optional[FileRecord]:
        """Process one reference. Returns the initiating record while it is still unused."""
        try:
            path = self.validate(ref)
        except AssistantBridgeError as err:
            logger.error(err.message, config_id=config_id, file_ref=ref, error_type=type(err).__name__)
            report.failed += 1
            report.errors.append(UploadError(ref=ref, reason=err.message))
            if initiating is not None:
                rejected = initiating
                await self._write(
                    lambda: self.records.update_file(rejected.with_event(FileEvent.REJECT, filename=Path(ref).name)),
                    ref,
                )
            return None

        logger.info("Uploading file to OpenAI", config_id=config_id, filename=path.name, file_size=path.stat().st_size)
        try:
            with path.open("rb") as handle:
                uploaded = await client.files.create(file=(path.name, handle), purpose="assistants")
        except (OpenAIError, OSError) as err:
            message = f"Failed to upload file {path.name}: {err}"
            logger.error(message, config_id=config_id, filename=path.name, error_type=type(err).__name__)
            report.failed += 1
            report.errors.append(UploadError(ref=ref, reason=message))
            if initiating is not None:
                errored = initiating
                await self._write(
                    lambda: self.records.update_file(errored.with_event(FileEvent.ERROR, filename=path.name)), ref
                )
            return None

        logger.info(
            "File successfully uploaded to OpenAI",
            filename=path.name,
            openai_file_id=uploaded.id,
            file_size=uploaded.bytes,
            upload_status=getattr(uploaded, "status", None) or "unknown",
        )
        report.succeeded += 1
        report.file_ids.append(uploaded.id)
        changes = {"filename": path.name, "openai_file_id": uploaded.id, "file_size": uploaded.bytes}
        if initiating is not None:
            used = initiating
            record = await self._write(
                lambda: self.records.update_file(used.with_event(FileEvent.UPLOAD, **changes)), ref
            )
        else:
            status = transition_file(FileStatus.PENDING, FileEvent.UPLOAD)
            fresh = FileRecord(config_id=config_id, status=status, **changes)
            record = await self._write(lambda: self.records.create_file(fresh), ref)

        try:
            await client.vector_stores.files.create(vector_store_id=vector_store_id, file_id=uploaded.id)
        except OpenAIError as err:
            # the upload stands, the file just is not searchable yet
            logger.warning(
                "Failed to add file to vector store",
                vector_store_id=vector_store_id,
                openai_file_id=uploaded.id,
                error_type=type(err).__name__,
                error=str(err),
            )
            return None
        if record is not None:
            indexed = record
            await self._write(lambda: self.records.update_file(indexed.with_event(FileEvent.INDEX)), ref)
        logger.debug("File added to vector store", vector_store_id=vector_store_id, openai_file_id=uploaded.id)
        return None
