"""
The store module is the durable record of every release: what was applied,
with which values, and how each attempt ended.

- Uses the release name and namespace as the key for all records.
- Revisions are immutable and append-only, trimmed from the oldest end.
- Provides a per-release lock that serializes install, upgrade, rollback and
  uninstall pipelines on the same release.

This abstract interface allows for various implementations (in-memory, files).
"""

from .store import ReleaseStore
from .in_memory import InMemoryReleaseStore
from .file import FileReleaseStore
from .release import Release, ReleaseRecord, Revision, release_key
from .status import ReleaseStatus

__all__ = [
    "ReleaseStore",
    "InMemoryReleaseStore",
    "FileReleaseStore",
    "Release",
    "ReleaseRecord",
    "Revision",
    "ReleaseStatus",
    "release_key",
]
