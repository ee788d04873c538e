"""Persistência do Branchflow: store endereçada por conteúdo e formatos de serialização."""

from .content_store import ContentStore, FileContentStore, MemoryContentStore, StoreEntry
from .formats import deserialize, files_unchanged, serialize, tracked_files

__all__ = [
    "ContentStore",
    "FileContentStore",
    "MemoryContentStore",
    "StoreEntry",
    "deserialize",
    "files_unchanged",
    "serialize",
    "tracked_files",
]
