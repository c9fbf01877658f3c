"""Representation of the rendered contents of a release.

A manifest set is the ordered list of concrete `Resource` objects produced by
rendering a chart. Resources are identified by their `NamedResource` and
carry a content digest used to compute a plan, and a weight used to order the
plan so that prerequisites (e.g. a Namespace) exist before their dependents.
"""

from collections.abc import Iterable
import copy
from dataclasses import dataclass, field
import hashlib
import json
import logging
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_decode, yaml_encode
from mashumaro.config import BaseConfig
import yaml

from .exceptions import DuplicateResource, InputException

__all__ = [
    "NamedResource",
    "Resource",
    "kind_weight",
    "index_resources",
    "sort_resources",
    "dump_resources",
]

_LOGGER = logging.getLogger(__name__)


NAMESPACE_KIND = "Namespace"
CRD_KIND = "CustomResourceDefinition"
SECRET_KIND = "Secret"
CONFIG_MAP_KIND = "ConfigMap"
LIST_KIND = "List"
DEFAULT_NAMESPACE = "default"

# Order in which kinds are created. Prerequisites come first and are removed
# last. Kinds not in this list are created after everything else.
INSTALL_ORDER = [
    NAMESPACE_KIND,
    CRD_KIND,
    "NetworkPolicy",
    "ResourceQuota",
    "LimitRange",
    "PodSecurityPolicy",
    "PodDisruptionBudget",
    "ServiceAccount",
    SECRET_KIND,
    CONFIG_MAP_KIND,
    "StorageClass",
    "PersistentVolume",
    "PersistentVolumeClaim",
    "ClusterRole",
    "ClusterRoleBinding",
    "Role",
    "RoleBinding",
    "Service",
    "DaemonSet",
    "Pod",
    "ReplicationController",
    "ReplicaSet",
    "Deployment",
    "HorizontalPodAutoscaler",
    "StatefulSet",
    "Job",
    "CronJob",
    "IngressClass",
    "Ingress",
    "APIService",
]
_WEIGHTS = {kind: weight for weight, kind in enumerate(INSTALL_ORDER)}
UNKNOWN_KIND_WEIGHT = len(INSTALL_ORDER)

CLUSTER_SCOPED_KINDS = {
    NAMESPACE_KIND,
    CRD_KIND,
    "ClusterRole",
    "ClusterRoleBinding",
    "StorageClass",
    "PersistentVolume",
    "IngressClass",
    "PriorityClass",
    "APIService",
    "ValidatingWebhookConfiguration",
    "MutatingWebhookConfiguration",
}

# Workloads are only ready once their pods are, other kinds once they exist.
WORKLOAD_KINDS = {"Deployment", "StatefulSet", "ReplicaSet", "DaemonSet"}


def kind_weight(kind: str) -> int:
    """Return the ordering weight of a kind, lower weights are applied first."""
    return _WEIGHTS.get(kind, UNKNOWN_KIND_WEIGHT)


def compute_digest(content: dict[str, Any]) -> str:
    """Return a stable digest of a resource document."""
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all serializable objects."""

    @classmethod
    def parse_yaml(cls, content: str) -> "BaseManifest":
        """Parse a serialized object."""
        return yaml_decode(content, cls)

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass(frozen=True)
class Resource(DataClassDictMixin):
    """A single rendered kubernetes object in a manifest set.

    Resources are immutable snapshots and are stored as part of a revision.
    """

    kind: str
    """The kind of the object."""

    api_version: str
    """The apiVersion of the object."""

    name: str
    """The name of the object."""

    namespace: str | None
    """The namespace of the object, None for cluster scoped kinds."""

    weight: int
    """Ordering hint, lower weights are created first and deleted last."""

    digest: str
    """Digest of the content used to detect changes between revisions."""

    content: dict[str, Any] = field(default_factory=dict)
    """The full rendered document."""

    @classmethod
    def parse_doc(
        cls, doc: dict[str, Any], default_namespace: str = DEFAULT_NAMESPACE
    ) -> "Resource":
        """Parse a Resource from a rendered kubernetes document."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid object, expected a mapping: {doc}")
        if not (kind := doc.get("kind")):
            raise InputException(f"Invalid object missing kind: {doc}")
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid object missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        content = copy.deepcopy(doc)
        namespace: str | None
        if kind in CLUSTER_SCOPED_KINDS:
            namespace = None
            content["metadata"].pop("namespace", None)
        else:
            namespace = metadata.get("namespace") or default_namespace
            content["metadata"]["namespace"] = namespace
        return cls(
            kind=kind,
            api_version=api_version,
            name=str(name),
            namespace=namespace,
            weight=kind_weight(kind),
            digest=compute_digest(content),
            content=content,
        )

    @property
    def identity(self) -> NamedResource:
        """Identity key of the resource, unique within a manifest set."""
        return NamedResource(kind=self.kind, namespace=self.namespace, name=self.name)

    @property
    def is_workload(self) -> bool:
        """Return True if readiness depends on replicas becoming available."""
        return self.kind in WORKLOAD_KINDS

    def manifest(self) -> str:
        """Return the rendered document as YAML."""
        return yaml.dump(self.content, sort_keys=False)

    def __str__(self) -> str:
        return str(self.identity)


def expand_lists(docs: Iterable[Any]) -> list[dict[str, Any]]:
    """Flatten `kind: List` documents into their items and drop empty documents."""
    results: list[dict[str, Any]] = []
    for doc in docs:
        if not doc:
            continue
        if isinstance(doc, dict) and doc.get("kind") == LIST_KIND:
            results.extend(item for item in doc.get("items") or [] if item)
            continue
        results.append(doc)
    return results


def index_resources(resources: Iterable[Resource]) -> dict[NamedResource, Resource]:
    """Key a manifest set by identity, rejecting duplicate identities."""
    index: dict[NamedResource, Resource] = {}
    for resource in resources:
        if resource.identity in index:
            raise DuplicateResource(resource.identity)
        index[resource.identity] = resource
    return index


def sort_resources(resources: Iterable[Resource]) -> list[Resource]:
    """Return resources in install order, ties broken by identity."""
    return sorted(resources, key=lambda r: (r.weight, r.kind, r.namespace or "", r.name))


def dump_resources(resources: Iterable[Resource]) -> str:
    """Render a manifest set as a multi document YAML stream."""
    return yaml.dump_all(
        [resource.content for resource in resources],
        sort_keys=False,
        explicit_start=True,
    )
