"""Repository implementations for records and secrets."""

from .base import BaseRecordRepository, BaseSecretRepository
from .document import DocumentRecordRepository, RecordTables
from .gcp import GCPRecordRepository, GCPSecretRepository
from .local import LocalRecordRepository, LocalSecretRepository

__all__ = [
    "BaseRecordRepository",
    "BaseSecretRepository",
    "DocumentRecordRepository",
    "RecordTables",
    "GCPRecordRepository",
    "GCPSecretRepository",
    "LocalRecordRepository",
    "LocalSecretRepository",
]
