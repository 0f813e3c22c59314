"""Transient artifact storage."""

from .manager import (
    INCOMING,
    OUTGOING,
    ArtifactHandle,
    ArtifactScope,
    StorageConfig,
    TransientStore,
    new_request_id,
    sanitize_filename,
)

__all__ = [
    "INCOMING",
    "OUTGOING",
    "ArtifactHandle",
    "ArtifactScope",
    "StorageConfig",
    "TransientStore",
    "new_request_id",
    "sanitize_filename",
]
