"""Blob storage for persisted templates."""

from rocket_templates.storage.blob import (
    BlobStorage,
    FilesystemBlobStorage,
    HttpBlobStorage,
    create_blob_storage,
)

__all__ = [
    "BlobStorage",
    "FilesystemBlobStorage",
    "HttpBlobStorage",
    "create_blob_storage",
]
