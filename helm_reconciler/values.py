"""Module for building the values tree used to render a chart.

The values tree is assembled from the chart defaults, then any values files
in the order given, then any `--set` overrides. Maps are merged recursively
and lists are replaced entirely, which matches how helm merges values.
"""

from collections.abc import Iterable
import copy
import logging
from pathlib import Path
import re
from typing import Any

import aiofiles
import yaml

from .exceptions import InputException


_LOGGER = logging.getLogger(__name__)

__all__ = [
    "deep_merge",
    "parse_set_values",
    "read_values_file",
    "load_values",
]


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two dictionaries. Lists are replaced entirely."""
    result = copy.deepcopy(base)
    for key, override_value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = deep_merge(base_value, override_value)
        elif override_value is None:
            # A null override removes the default, as `--set key=null` does in helm
            result.pop(key, None)
        else:
            result[key] = copy.deepcopy(override_value)
    return result


def _split_path(path: str) -> list[str]:
    """Split a dotted key path, allowing dots to be escaped with a backslash."""
    raw_parts = re.split(r"(?<!\\)\.", path)
    return [re.sub(r"\\(.)", r"\1", raw_part) for raw_part in raw_parts]


def _split_assignments(expr: str) -> list[str]:
    """Split `a=1,b={x,y}` on commas that are not escaped or inside braces."""
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    escaped = False
    for char in expr:
        if escaped:
            current.append(char)
            escaped = False
            continue
        if char == "\\":
            current.append(char)
            escaped = True
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    if current:
        parts.append("".join(current))
    return parts


def _parse_scalar(value: str) -> Any:
    """Parse a `--set` value into a typed scalar or list."""
    if value.startswith("{") and value.endswith("}"):
        inner = value[1:-1]
        if not inner:
            return []
        return [_parse_scalar(item) for item in _split_assignments(inner)]
    value = value.replace("\\,", ",")
    if value in ("true", "false"):
        return value == "true"
    if value == "null":
        return None
    try:
        return int(value)
    except ValueError:
        return value


def parse_set_values(expressions: Iterable[str]) -> dict[str, Any]:
    """Parse `--set` expressions such as `image.tag=v2,replicaCount=3`."""
    values: dict[str, Any] = {}
    for expr in expressions:
        for assignment in _split_assignments(expr):
            if "=" not in assignment:
                raise InputException(
                    f"Invalid value assignment '{assignment}', expected key=value"
                )
            key, raw_value = assignment.split("=", 1)
            if not key:
                raise InputException(f"Invalid value assignment '{assignment}'")
            parts = _split_path(key)
            inner = values
            for part in parts[:-1]:
                existing = inner.get(part)
                if existing is None:
                    existing = {}
                    inner[part] = existing
                elif not isinstance(existing, dict):
                    raise InputException(
                        f"Value '{key}' conflicts with a scalar set at '{part}'"
                    )
                inner = existing
            inner[parts[-1]] = _parse_scalar(raw_value)
    _LOGGER.debug("Parsed set values: %s", values)
    return values


async def read_values_file(path: Path) -> dict[str, Any]:
    """Read a YAML values file, an empty file is an empty mapping."""
    try:
        async with aiofiles.open(str(path)) as values_file:
            content = await values_file.read()
    except FileNotFoundError as err:
        raise InputException(f"Values file {path} does not exist") from err
    try:
        doc = yaml.load(content, Loader=yaml.SafeLoader)
    except yaml.YAMLError as err:
        raise InputException(f"Values file {path} is not valid YAML: {err}") from err
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise InputException(
            f"Values file {path} must contain a mapping, found {type(doc).__name__}"
        )
    return doc


async def load_values(
    defaults: dict[str, Any],
    value_files: Iterable[Path] = (),
    set_values: Iterable[str] = (),
) -> dict[str, Any]:
    """Return the fully merged values tree for a render."""
    values = copy.deepcopy(defaults)
    for path in value_files:
        _LOGGER.debug("Merging values file %s", path)
        values = deep_merge(values, await read_values_file(path))
    if overrides := parse_set_values(set_values):
        values = deep_merge(values, overrides)
    return values
