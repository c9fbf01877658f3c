"""Release and revision records kept by the release store."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

from helm_reconciler.manifest import BaseManifest, NamedResource, Resource

from .status import ReleaseStatus

RELEASE_KIND = "Release"


def release_key(name: str, namespace: str) -> NamedResource:
    """Return the identity of a release in the store."""
    return NamedResource(kind=RELEASE_KIND, namespace=namespace, name=name)


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class Revision(DataClassDictMixin):
    """An immutable snapshot of one apply attempt of a release."""

    release: str
    """Name of the release."""

    namespace: str
    """Namespace of the release."""

    number: int
    """Revision number, unique and strictly increasing within a release."""

    status: ReleaseStatus
    """Outcome of the attempt: deployed, failed or uninstalled."""

    resources: tuple[Resource, ...] = ()
    """The manifest set applied by this attempt."""

    values: dict[str, Any] = field(default_factory=dict)
    """The values tree used to render the manifest set."""

    chart: str | None = None
    """Name and version of the chart, e.g. `app-0.1.0`."""

    description: str | None = None
    """Human readable summary of the attempt."""

    timestamp: datetime = field(default_factory=utcnow)
    """When the attempt was recorded."""

    @property
    def key(self) -> NamedResource:
        return release_key(self.release, self.namespace)

    def __str__(self) -> str:
        return f"{self.namespace}/{self.release}#{self.number} ({self.status})"

    class Config(BaseConfig):
        omit_none = True


@dataclass
class Release(BaseManifest):
    """A named, namespaced deployment unit and its current status."""

    name: str
    """The name of the release, unique per namespace."""

    namespace: str
    """The namespace of the release."""

    status: ReleaseStatus
    """The current lifecycle status."""

    revision: int = 0
    """Number of the latest revision, 0 before anything was recorded."""

    deployed: int | None = None
    """Number of the revision that is currently deployed, if any."""

    @property
    def key(self) -> NamedResource:
        return release_key(self.name, self.namespace)

    @property
    def namespaced_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    def revision_status(self, revision: Revision) -> ReleaseStatus:
        """Status of a historical revision relative to the current deployment."""
        if revision.status == ReleaseStatus.DEPLOYED and revision.number != self.deployed:
            return ReleaseStatus.SUPERSEDED
        return revision.status


@dataclass
class ReleaseRecord(BaseManifest):
    """Everything stored for one release: its status and revision history."""

    release: Release
    """The release."""

    revisions: list[Revision] = field(default_factory=list)
    """Revision history, oldest first."""
