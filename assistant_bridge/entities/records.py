"""Persisted records: configuration, assistant and file, with their status machines."""

import html
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from .errors import InvalidStatusTransition, NoModel

MANUAL_MODEL = "manual"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KnownModel(BaseModel):
    """A model picked from the provider's model list."""

    kind: Literal["known"] = "known"
    id: str

    @property
    def model_id(self) -> str:
        return self.id


class CustomModel(BaseModel):
    """A free-text model name entered by the admin."""

    kind: Literal["custom"] = "custom"
    name: str

    @property
    def model_id(self) -> str:
        return self.name


ModelSelection = Annotated[Union[KnownModel, CustomModel], Field(discriminator="kind")]


def model_from_form(model: Optional[str], model_manual: Optional[str] = None) -> KnownModel | CustomModel:
    """Resolve the admin form's model fields into a ModelSelection.

    This is the only place the ``manual`` sentinel is interpreted.
    """
    selected = (model or "").strip()
    manual = (model_manual or "").strip()

    if selected == MANUAL_MODEL:
        if not manual:
            raise NoModel("Please enter a custom model name when selecting manual override.")
        return CustomModel(name=manual)
    if selected:
        return KnownModel(id=selected)
    if manual:
        return CustomModel(name=manual)
    raise NoModel()


def normalize_instructions(raw: Optional[str]) -> str:
    """Normalize line endings and trim, keeping every other character as typed."""
    if raw is None:
        return ""
    return str(raw).replace("\r\n", "\n").replace("\r", "\n").strip()


def decode_instructions(stored: Optional[str]) -> str:
    """Undo storage-layer HTML escaping so quotes and brackets reach the provider literally."""
    return html.unescape(normalize_instructions(stored))


class AssistantStatus(str, Enum):
    PENDING = "pending"
    CREATING = "creating"
    ACTIVE = "active"
    FAILED = "failed"


class AssistantEvent(str, Enum):
    SUBMIT = "submit"
    SUCCEED = "succeed"
    FAIL = "fail"


_ASSISTANT_TRANSITIONS: dict[tuple[AssistantStatus, AssistantEvent], AssistantStatus] = {
    (AssistantStatus.PENDING, AssistantEvent.SUBMIT): AssistantStatus.CREATING,
    (AssistantStatus.ACTIVE, AssistantEvent.SUBMIT): AssistantStatus.CREATING,
    (AssistantStatus.FAILED, AssistantEvent.SUBMIT): AssistantStatus.CREATING,
    (AssistantStatus.CREATING, AssistantEvent.SUCCEED): AssistantStatus.ACTIVE,
    (AssistantStatus.CREATING, AssistantEvent.FAIL): AssistantStatus.FAILED,
    # pre-flight checks can fail before creation starts
    (AssistantStatus.PENDING, AssistantEvent.FAIL): AssistantStatus.FAILED,
    (AssistantStatus.ACTIVE, AssistantEvent.FAIL): AssistantStatus.FAILED,
    (AssistantStatus.FAILED, AssistantEvent.FAIL): AssistantStatus.FAILED,
}


def transition_assistant(current: AssistantStatus, event: AssistantEvent) -> AssistantStatus:
    try:
        return _ASSISTANT_TRANSITIONS[(AssistantStatus(current), AssistantEvent(event))]
    except KeyError:
        raise InvalidStatusTransition(str(AssistantStatus(current).value), str(AssistantEvent(event).value)) from None


class FileStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    UPLOADED = "uploaded"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"


class FileEvent(str, Enum):
    START = "start"
    UPLOAD = "upload"
    INDEX = "index"
    REJECT = "reject"
    ERROR = "error"


_FILE_TRANSITIONS: dict[tuple[FileStatus, FileEvent], FileStatus] = {
    (FileStatus.PENDING, FileEvent.START): FileStatus.PROCESSING,
    (FileStatus.FAILED, FileEvent.START): FileStatus.PROCESSING,
    (FileStatus.ERROR, FileEvent.START): FileStatus.PROCESSING,
    (FileStatus.UPLOADED, FileEvent.START): FileStatus.PROCESSING,
    (FileStatus.COMPLETED, FileEvent.START): FileStatus.PROCESSING,
    (FileStatus.PENDING, FileEvent.UPLOAD): FileStatus.UPLOADED,
    (FileStatus.PROCESSING, FileEvent.UPLOAD): FileStatus.UPLOADED,
    (FileStatus.UPLOADED, FileEvent.INDEX): FileStatus.COMPLETED,
    (FileStatus.PENDING, FileEvent.REJECT): FileStatus.FAILED,
    (FileStatus.PROCESSING, FileEvent.REJECT): FileStatus.FAILED,
    (FileStatus.PENDING, FileEvent.ERROR): FileStatus.ERROR,
    (FileStatus.PROCESSING, FileEvent.ERROR): FileStatus.ERROR,
}


def transition_file(current: FileStatus, event: FileEvent) -> FileStatus:
    try:
        return _FILE_TRANSITIONS[(FileStatus(current), FileEvent(event))]
    except KeyError:
        raise InvalidStatusTransition(str(FileStatus(current).value), str(FileEvent(event).value)) from None


class Configuration(BaseModel):
    """The singleton record holding the provider API key and the knowledge store binding."""

    id: int = 0
    title: str
    api_key: str = Field(default="", description="Encrypted (or legacy base64) API key")
    vector_store_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    touched_at: datetime = Field(default_factory=utcnow)


class Assistant(BaseModel):
    """A named, parameterized assistant definition bound to one configuration."""

    id: int = 0
    config_id: int
    name: str
    description: str = ""
    system_instructions: str = ""
    model: ModelSelection
    temperature: float = Field(default=0.25, ge=0, le=2)
    top_p: float = Field(default=1.0, ge=0, le=1)
    max_tokens: int = Field(default=2000, ge=0, description="Informational, not forwarded to runs")
    openai_assistant_id: Optional[str] = None
    status: AssistantStatus = AssistantStatus.PENDING
    status_cause: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    touched_at: datetime = Field(default_factory=utcnow)

    def with_event(self, event: AssistantEvent, cause: Optional[str] = None) -> "Assistant":
        return self.model_copy(update={"status": transition_assistant(self.status, event), "status_cause": cause})


class FileRecord(BaseModel):
    """A user file uploaded to the provider and attached to the knowledge store."""

    id: int = 0
    config_id: int
    filename: str = ""
    openai_file_id: Optional[str] = None
    file_size: int = 0
    status: FileStatus = FileStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    touched_at: datetime = Field(default_factory=utcnow)

    def with_event(self, event: FileEvent, **changes: object) -> "FileRecord":
        return self.model_copy(update={**changes, "status": transition_file(self.status, event)})
