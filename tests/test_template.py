"""Tests for the template renderer."""

from typing import Any

import pytest

from helm_reconciler.chart import Chart
from helm_reconciler.exceptions import DuplicateResource, InputException, MissingValue
from helm_reconciler.manifest import dump_resources
from helm_reconciler.template import ReleaseInfo, Renderer, render_chart
from helm_reconciler.values import deep_merge


def make_chart(templates: dict[str, str], defaults: dict[str, Any] | None = None) -> Chart:
    return Chart(name="test", version="0.0.1", defaults=defaults or {}, templates=templates)


CONFIG_MAP = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: {{ Release.Name }}-config
data:
  value: {{ Values.setting.value | quote }}
"""


async def test_render_app_chart(app_chart: Chart) -> None:
    """Test the default values render a Deployment and a Service."""
    resources = render_chart(
        app_chart, app_chart.defaults, ReleaseInfo(name="web", namespace="prod")
    )
    assert [str(r) for r in resources] == [
        "Service/prod/web",
        "Deployment/prod/web",
    ]
    deployment = resources[1].content
    assert deployment["spec"]["replicas"] == 1
    container = deployment["spec"]["template"]["spec"]["containers"][0]
    assert container["image"] == "app:v1"
    assert container["ports"] == [{"containerPort": 80}]
    assert deployment["metadata"]["labels"] == {
        "app.kubernetes.io/name": "app",
        "app.kubernetes.io/instance": "web",
        "app.kubernetes.io/managed-by": "helm-reconciler",
    }
    service = resources[0].content
    assert service["spec"]["type"] == "ClusterIP"
    assert service["spec"]["ports"] == [{"port": 80, "targetPort": 80}]


async def test_render_is_deterministic(app_chart: Chart) -> None:
    """Test rendering twice yields byte identical manifest sets."""
    values = deep_merge(app_chart.defaults, {"replicaCount": 3, "image": "app:v2"})
    release = ReleaseInfo(name="web")
    first = Renderer(app_chart).render(values, release)
    second = Renderer(app_chart).render(values, release)
    assert dump_resources(first) == dump_resources(second)
    assert [r.digest for r in first] == [r.digest for r in second]


async def test_render_notes(app_chart: Chart) -> None:
    notes = Renderer(app_chart).render_notes(app_chart.defaults, ReleaseInfo(name="web"))
    assert notes == "Release web runs app:v1 with 1 replica(s).\n"


def test_render_notes_missing() -> None:
    chart = make_chart({"cm.yaml": CONFIG_MAP})
    assert Renderer(chart).render_notes({}, ReleaseInfo(name="web")) is None


async def test_render_platform_chart(platform_chart: Chart) -> None:
    """Test List flattening, cluster scoped kinds and install order."""
    values = deep_merge(platform_chart.defaults, {"token": "s3cr3t"})
    resources = render_chart(platform_chart, values, ReleaseInfo(name="core"))
    assert [str(r) for r in resources] == [
        "Namespace/platform",
        "Secret/platform/core-token",
        "ConfigMap/platform/core-config",
        "Service/platform/core-worker",
        "StatefulSet/platform/core-worker",
    ]
    assert resources[1].content["data"]["token"] == "czNjcjN0"
    assert resources[2].content["data"]["LOG_LEVEL"] == "info"
    checksum = resources[4].content["spec"]["template"]["metadata"]["annotations"]
    assert len(checksum["checksum/config"]) == 64


async def test_config_checksum_follows_values(platform_chart: Chart) -> None:
    release = ReleaseInfo(name="core")
    values = deep_merge(platform_chart.defaults, {"token": "t"})
    debug = deep_merge(values, {"config": {"logLevel": "debug"}})
    first = render_chart(platform_chart, values, release)[-1]
    second = render_chart(platform_chart, debug, release)[-1]
    assert first.digest != second.digest


async def test_missing_value_reports_path(app_chart: Chart) -> None:
    """Test an undefined value fails with the full reference path."""
    values = deep_merge(app_chart.defaults, {"service": None})
    with pytest.raises(MissingValue, match="Values.service") as exc_info:
        render_chart(app_chart, values, ReleaseInfo(name="web"))
    assert exc_info.value.path == "Values.service"


def test_missing_nested_value_reports_path() -> None:
    chart = make_chart({"cm.yaml": CONFIG_MAP}, defaults={"setting": {"other": 1}})
    with pytest.raises(MissingValue) as exc_info:
        render_chart(chart, chart.defaults, ReleaseInfo(name="web"))
    assert exc_info.value.path == "Values.setting.value"


def test_missing_value_is_never_empty_string() -> None:
    """Test an undefined value is not rendered as an empty string."""
    chart = make_chart({"cm.yaml": CONFIG_MAP.replace(" | quote", "")})
    with pytest.raises(MissingValue, match="Values.setting"):
        render_chart(chart, {}, ReleaseInfo(name="web"))


async def test_required_value(platform_chart: Chart) -> None:
    """Test `required` fails with the message and path."""
    with pytest.raises(MissingValue, match="a token is required") as exc_info:
        render_chart(platform_chart, platform_chart.defaults, ReleaseInfo(name="core"))
    assert exc_info.value.path == "Values.token"


def test_optional_values() -> None:
    """Test `default` and `is defined` keep working for optional values."""
    chart = make_chart(
        {
            "cm.yaml": """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: cm
data:
  level: {{ Values.level | default("info") }}
{% if Values.extra is defined %}
  extra: {{ Values.extra }}
{% endif %}
""",
        }
    )
    resources = render_chart(chart, {}, ReleaseInfo(name="web"))
    assert resources[0].content["data"] == {"level": "info"}
    resources = render_chart(chart, {"level": "debug", "extra": "x"}, ReleaseInfo(name="web"))
    assert resources[0].content["data"] == {"level": "debug", "extra": "x"}


def test_values_keys_named_like_methods() -> None:
    """Test keys such as `items` resolve to values, not mapping methods."""
    chart = make_chart(
        {
            "cm.yaml": """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: cm
data:
  items: {{ Values.items | quote }}
  count: {{ Values.values | quote }}
""",
        }
    )
    resources = render_chart(chart, {"items": "a", "values": "b"}, ReleaseInfo(name="web"))
    assert resources[0].content["data"] == {"items": "a", "count": "b"}


def test_release_context() -> None:
    chart = make_chart(
        {
            "cm.yaml": """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: {{ Release.Name | trunc(3) }}
data:
  namespace: {{ Release.Namespace }}
  revision: {{ Release.Revision | quote }}
  upgrade: {{ Release.IsUpgrade | quote }}
  chart: {{ Chart.Name }}-{{ Chart.Version }}
  settings: {{ Values.settings | toyaml | nindent(4) }}
""",
        }
    )
    release = ReleaseInfo(name="website", namespace="prod", revision=4, is_install=False)
    resources = render_chart(chart, {"settings": {"a": 1}}, release)
    assert resources[0].name == "web"
    assert resources[0].content["data"] == {
        "namespace": "prod",
        "revision": "4",
        "upgrade": "True",
        "chart": "test-0.0.1",
        "settings": {"a": 1},
    }


def test_duplicate_resource_across_templates() -> None:
    """Test the same identity rendered by two templates is fatal."""
    chart = make_chart({"a.yaml": CONFIG_MAP, "b.yaml": CONFIG_MAP})
    with pytest.raises(DuplicateResource, match="ConfigMap/default/web-config"):
        render_chart(chart, {"setting": {"value": 1}}, ReleaseInfo(name="web"))


def test_multiple_documents_and_empty_documents() -> None:
    chart = make_chart(
        {
            "all.yaml": "---\n"
            + CONFIG_MAP
            + "---\n---\n"
            + CONFIG_MAP.replace("-config", "-other"),
        }
    )
    resources = render_chart(chart, {"setting": {"value": 1}}, ReleaseInfo(name="web"))
    assert [r.name for r in resources] == ["web-config", "web-other"]


def test_template_syntax_error() -> None:
    chart = make_chart({"bad.yaml": "kind: {{ Values.kind "})
    with pytest.raises(InputException, match="syntax error"):
        render_chart(chart, {}, ReleaseInfo(name="web"))


def test_template_invalid_yaml() -> None:
    chart = make_chart({"bad.yaml": "kind: [unclosed\n"})
    with pytest.raises(InputException, match="did not render valid YAML"):
        render_chart(chart, {}, ReleaseInfo(name="web"))


def test_template_invalid_object() -> None:
    chart = make_chart({"bad.yaml": "apiVersion: v1\nkind: ConfigMap\nmetadata: {}\n"})
    with pytest.raises(InputException, match="Template bad.yaml"):
        render_chart(chart, {}, ReleaseInfo(name="web"))
