"""Module for a release store persisted as YAML files on local disk.

Each release is one document at `<state_dir>/<namespace>/<name>.yaml`
holding the release status and its revision history. Documents are replaced
atomically so a reader never observes a partially written history. A lock
file next to the document keeps concurrent processes from running pipelines
on the same release at the same time.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import hashlib
import logging
import os
from pathlib import Path
from typing import cast

import aiofiles
import aiofiles.os
from slugify import slugify

from helm_reconciler.exceptions import InputException, ReleaseLocked
from helm_reconciler.manifest import NamedResource

from .release import ReleaseRecord
from .store import ReleaseStore

_LOGGER = logging.getLogger(__name__)

RECORD_SUFFIX = ".yaml"
LOCK_SUFFIX = ".lock"


def _path_part(value: str) -> str:
    """Return a file name for a release name or namespace.

    Names that are already safe are used as is. Any other name gets a suffix
    derived from the exact name, so two names that slugify the same way never
    share a file.
    """
    slug = slugify(value, max_length=63, lowercase=True, separator="-")
    if slug == value:
        return value
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}" if slug else digest


class FileReleaseStore(ReleaseStore):
    """ReleaseStore persisted in a local state directory."""

    def __init__(
        self,
        state_dir: Path,
        max_history: int = 10,
        lock_timeout: float = 60.0,
        lock_poll_interval: float = 0.1,
    ) -> None:
        """Initialize FileReleaseStore."""
        super().__init__(max_history=max_history)
        self._state_dir = state_dir
        self._lock_timeout = lock_timeout
        self._lock_poll_interval = lock_poll_interval

    def _path(self, key: NamedResource) -> Path:
        return (
            self._state_dir
            / _path_part(key.namespace or "")
            / f"{_path_part(key.name)}{RECORD_SUFFIX}"
        )

    async def _read(self, key: NamedResource) -> ReleaseRecord | None:
        path = self._path(key)
        try:
            async with aiofiles.open(str(path)) as record_file:
                content = await record_file.read()
        except FileNotFoundError:
            return None
        record = self._parse(path, content)
        if record.release.key != key:
            raise InputException(
                f"Release record {path} belongs to {record.release.namespaced_name}, "
                f"not {key.namespaced_name}"
            )
        return record

    @staticmethod
    def _parse(path: Path, content: str) -> ReleaseRecord:
        if not content:
            raise InputException(f"Release record {path} is empty")
        try:
            return cast(ReleaseRecord, ReleaseRecord.parse_yaml(content))
        except ValueError as err:
            raise InputException(f"Release record {path} is not valid: {err}") from err

    async def _write(self, record: ReleaseRecord) -> None:
        path = self._path(record.release.key)
        await aiofiles.os.makedirs(str(path.parent), exist_ok=True)
        tmp_path = path.with_suffix(f"{RECORD_SUFFIX}.tmp")
        async with aiofiles.open(str(tmp_path), mode="w") as record_file:
            await record_file.write(record.yaml())
        await aiofiles.os.replace(str(tmp_path), str(path))
        _LOGGER.debug("Wrote release record %s", path)

    async def _remove(self, key: NamedResource) -> None:
        try:
            await aiofiles.os.remove(str(self._path(key)))
        except FileNotFoundError:
            pass

    async def _keys(self) -> list[NamedResource]:
        if not self._state_dir.is_dir():
            return []
        keys = []
        for path in sorted(self._state_dir.glob(f"*/*{RECORD_SUFFIX}")):
            async with aiofiles.open(str(path)) as record_file:
                record = self._parse(path, await record_file.read())
            keys.append(record.release.key)
        return keys

    @asynccontextmanager
    async def _exclusive(self, key: NamedResource) -> AsyncGenerator[None, None]:
        """Hold a lock file for the release while the pipeline runs."""
        lock_path = self._path(key).with_suffix(LOCK_SUFFIX)
        await aiofiles.os.makedirs(str(lock_path.parent), exist_ok=True)
        try:
            async with asyncio.timeout(self._lock_timeout):
                while True:
                    try:
                        fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                    except FileExistsError:
                        await asyncio.sleep(self._lock_poll_interval)
                        continue
                    os.write(fd, str(os.getpid()).encode())
                    os.close(fd)
                    break
        except TimeoutError as err:
            raise ReleaseLocked(
                f"Release {key.namespaced_name} is locked by another operation "
                f"(remove {lock_path} if no operation is running)"
            ) from err
        try:
            yield
        finally:
            await aiofiles.os.remove(str(lock_path))
