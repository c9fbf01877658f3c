"""Tests for the format library."""

from helm_reconciler.tool.format import (
    JsonFormatter,
    PrintFormatter,
    YamlFormatter,
    format_columns,
    struct_formatter,
)


def test_format_columns_empty_rows() -> None:
    assert list(format_columns(["a", "b", "c"], [])) == ["a   b   c"]


def test_format_columns_rows() -> None:
    """Tests format with normal rows"""
    assert list(
        format_columns(
            ["name", "namespace"], [["podinfo", "podinfo"], ["metallb", "network"]]
        )
    ) == [
        "name      namespace",
        "podinfo   podinfo",
        "metallb   network",
    ]


def test_print_formatter() -> None:
    formatter = PrintFormatter(["revision", "status", "description"])
    rows = [
        {"revision": 2, "status": "deployed", "description": None},
        {"revision": 1, "status": "superseded", "description": "Install complete"},
    ]
    assert list(formatter.format(rows)) == [
        "REVISION   STATUS       DESCRIPTION",
        "2          deployed",
        "1          superseded   Install complete",
    ]


def test_print_formatter_no_rows() -> None:
    assert list(PrintFormatter(["name"]).format([])) == []


def test_yaml_formatter() -> None:
    formatter = YamlFormatter()
    assert formatter.dumps([{"name": "web", "revision": 1}]) == (
        "---\n- name: web\n  revision: 1\n"
    )


def test_struct_formatter() -> None:
    assert isinstance(struct_formatter("json"), JsonFormatter)
    assert isinstance(struct_formatter("yaml"), YamlFormatter)
    assert JsonFormatter().dumps({"a": 1}) == '{\n  "a": 1\n}\n'
