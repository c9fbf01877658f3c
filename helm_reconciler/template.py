"""Library for rendering a chart into a concrete manifest set.

Templates are expanded with Jinja2 using a context shaped like the one helm
charts expect: `Values`, `Release` and `Chart`. Rendering is strict: any
reference to a value that is not defined fails with `MissingValue` naming the
full reference path, instead of silently rendering an empty string.

```python
from helm_reconciler.chart import load_chart
from helm_reconciler.template import ReleaseInfo, Renderer

chart = await load_chart(Path("charts/app"))
renderer = Renderer(chart)
resources = renderer.render(chart.defaults, ReleaseInfo(name="app"))
for resource in resources:
    print(resource.identity, resource.digest)
```
"""

import base64
from dataclasses import dataclass
import hashlib
import json
import logging
from typing import Any

import jinja2
from jinja2.utils import missing
import yaml

from .chart import Chart
from .context import trace_context
from .exceptions import InputException, MissingValue
from .manifest import (
    DEFAULT_NAMESPACE,
    Resource,
    expand_lists,
    index_resources,
    sort_resources,
)

__all__ = [
    "ReleaseInfo",
    "Renderer",
    "render_chart",
]

_LOGGER = logging.getLogger(__name__)

SERVICE_NAME = "helm-reconciler"


@dataclass(frozen=True)
class ReleaseInfo:
    """Information about the release exposed to templates as `Release`."""

    name: str
    namespace: str = DEFAULT_NAMESPACE
    revision: int = 1
    is_install: bool = True

    def as_context(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "Namespace": self.namespace,
            "Revision": self.revision,
            "IsInstall": self.is_install,
            "IsUpgrade": not self.is_install,
            "Service": SERVICE_NAME,
        }


class ValuesNode(dict):  # type: ignore[type-arg]
    """A mapping in the template context that knows its own reference path."""

    def __init__(self, path: str, items: dict[str, Any]) -> None:
        super().__init__(items)
        self.path = path


def _wrap(value: Any, path: str) -> Any:
    if isinstance(value, dict):
        return ValuesNode(
            path, {key: _wrap(item, f"{path}.{key}") for key, item in value.items()}
        )
    if isinstance(value, list):
        return [_wrap(item, f"{path}[{i}]") for i, item in enumerate(value)]
    return value


def _unwrap(value: Any) -> Any:
    if isinstance(value, jinja2.Undefined):
        # Triggers the MissingValue error for strict undefined values
        str(value)
    if isinstance(value, dict):
        return {key: _unwrap(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_unwrap(item) for item in value]
    return value


class _UndefinedReference(jinja2.UndefinedError):
    """Raised by the template engine when an undefined value is used."""


class StrictValueUndefined(jinja2.StrictUndefined):
    """Undefined value that fails on any use and reports its reference path."""

    __slots__ = ()

    def __init__(
        self,
        hint: str | None = None,
        obj: Any = missing,
        name: str | None = None,
        exc: type[jinja2.exceptions.TemplateRuntimeError] = jinja2.UndefinedError,
    ) -> None:
        super().__init__(hint, obj, name, _UndefinedReference)

    @property
    def reference_path(self) -> str:
        """The dotted path of the reference that was not defined."""
        obj = self._undefined_obj
        name = self._undefined_name
        if isinstance(obj, ValuesNode):
            return f"{obj.path}.{name}"
        if obj is missing and name is not None:
            return str(name)
        return self._undefined_hint or str(name)

    @property
    def _undefined_message(self) -> str:
        return self.reference_path


class _Environment(jinja2.Environment):
    """Environment that resolves `Values.key` to mapping items before attributes.

    This lets values use keys such as `items` or `values` which are also
    method names on a mapping.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, ValuesNode):
            if attribute in obj:
                return obj[attribute]
            if attribute.startswith("_") or not hasattr(dict, attribute):
                return self.undefined(obj=obj, name=attribute)
        return super().getattr(obj, attribute)


def _required(message: str, value: Any) -> Any:
    """Fail the render when a value is not set, like helm's `required`."""
    if isinstance(value, StrictValueUndefined):
        raise MissingValue(value.reference_path, message)
    if value is None or value == "":
        raise MissingValue(message)
    return value


def _to_yaml(value: Any) -> str:
    return yaml.dump(_unwrap(value), sort_keys=False).rstrip("\n")


def _to_json(value: Any) -> str:
    return json.dumps(_unwrap(value), sort_keys=True)


def _b64enc(value: Any) -> str:
    return base64.b64encode(str(value).encode("utf-8")).decode("utf-8")


def _quote(value: Any) -> str:
    return json.dumps(str(value))


def _nindent(value: Any, width: int) -> str:
    padding = " " * width
    return "\n" + "\n".join(padding + line for line in str(value).split("\n"))


def _trunc(value: Any, length: int) -> str:
    return str(value)[:length]


def _sha256sum(value: Any) -> str:
    return hashlib.sha256(str(value).encode("utf-8")).hexdigest()


def _make_environment(chart: Chart) -> jinja2.Environment:
    env = _Environment(
        loader=jinja2.DictLoader(chart.templates),
        undefined=StrictValueUndefined,
        autoescape=False,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters.update(
        {
            "toyaml": _to_yaml,
            "toYaml": _to_yaml,
            "tojson": _to_json,
            "toJson": _to_json,
            "b64enc": _b64enc,
            "quote": _quote,
            "nindent": _nindent,
            "trunc": _trunc,
            "sha256sum": _sha256sum,
        }
    )
    env.globals["required"] = _required
    return env


class Renderer:
    """Renders a chart into an ordered list of resources."""

    def __init__(self, chart: Chart) -> None:
        """Initialize Renderer."""
        self._chart = chart
        self._env = _make_environment(chart)

    def _context(self, values: dict[str, Any], release: ReleaseInfo) -> dict[str, Any]:
        chart = {
            "Name": self._chart.name,
            "Version": self._chart.version,
            "AppVersion": self._chart.app_version or "",
        }
        return {
            "Values": _wrap(values, "Values"),
            "Release": _wrap(release.as_context(), "Release"),
            "Chart": _wrap(chart, "Chart"),
        }

    def _render_template(self, name: str, context: dict[str, Any]) -> str:
        try:
            return self._env.get_template(name).render(context)
        except _UndefinedReference as err:
            raise MissingValue(str(err)) from err
        except jinja2.TemplateSyntaxError as err:
            raise InputException(
                f"Template {name} has a syntax error on line {err.lineno}: {err.message}"
            ) from err
        except jinja2.TemplateError as err:
            raise InputException(f"Unable to render template {name}: {err}") from err

    def render(self, values: dict[str, Any], release: ReleaseInfo) -> list[Resource]:
        """Render the chart templates with the fully merged values tree."""
        with trace_context("render", release.name):
            context = self._context(values, release)
            resources: list[Resource] = []
            for name in self._chart.manifest_templates:
                text = self._render_template(name, context)
                try:
                    docs = list(yaml.load_all(text, Loader=yaml.SafeLoader))
                except yaml.YAMLError as err:
                    raise InputException(
                        f"Template {name} did not render valid YAML: {err}"
                    ) from err
                for doc in expand_lists(docs):
                    try:
                        resources.append(Resource.parse_doc(doc, release.namespace))
                    except InputException as err:
                        raise InputException(f"Template {name}: {err}") from err
            # Rejects duplicate identities across all templates
            index_resources(resources)
            result = sort_resources(resources)
        _LOGGER.info(
            "Chart %s rendered %d resources", self._chart.full_name, len(result)
        )
        return result

    def render_notes(self, values: dict[str, Any], release: ReleaseInfo) -> str | None:
        """Render the release notes, if the chart has any."""
        if not (name := self._chart.notes_template):
            return None
        return self._render_template(name, self._context(values, release))


def render_chart(
    chart: Chart, values: dict[str, Any], release: ReleaseInfo
) -> list[Resource]:
    """Render a chart into a manifest set."""
    return Renderer(chart).render(values, release)
