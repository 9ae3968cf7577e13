"""Abstract base classes for repository implementations."""

import abc
from typing import Optional

from ..entities import Assistant, Configuration, FileRecord


class BaseSecretRepository(abc.ABC):
    """Abstract base class for secret repository implementations."""

    @abc.abstractmethod
    async def access_secret(self, secret_suffix: str) -> Optional[str]:
        """Return the secret stored under the suffix, or None when there is none."""
        raise NotImplementedError


class BaseRecordRepository(abc.ABC):
    """Abstract base class for the configuration, assistant and file record store.

    Every update bumps the record's ``touched_at``. Deleting a configuration
    deletes its assistants and files.
    """

    # Configurations

    @abc.abstractmethod
    async def create_configuration(self, configuration: Configuration) -> Configuration:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_configuration(self, config_id: int) -> Optional[Configuration]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_configurations(self) -> list[Configuration]:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_configuration(self, configuration: Configuration) -> Configuration:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_configuration(self, config_id: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def find_active_configuration(self) -> Optional[Configuration]:
        """Most recently touched configuration with a non-empty API key."""
        raise NotImplementedError

    # Assistants

    @abc.abstractmethod
    async def create_assistant(self, assistant: Assistant) -> Assistant:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_assistant(self, assistant_id: int) -> Optional[Assistant]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_assistants(self, config_id: int) -> list[Assistant]:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_assistant(self, assistant: Assistant) -> Assistant:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_assistant(self, assistant_id: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def find_active_assistant(self, config_id: int) -> Optional[Assistant]:
        """Most recently touched assistant of the configuration with status ``active``."""
        raise NotImplementedError

    # Files

    @abc.abstractmethod
    async def create_file(self, file_record: FileRecord) -> FileRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_file(self, file_id: int) -> Optional[FileRecord]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_files(self, config_id: int) -> list[FileRecord]:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_file(self, file_record: FileRecord) -> FileRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_file(self, file_id: int) -> None:
        raise NotImplementedError
