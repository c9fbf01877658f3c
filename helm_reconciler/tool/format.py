"""Library for formatting command output as tables, YAML or JSON."""

from abc import ABC, abstractmethod
import json
import sys
from typing import Any, Generator, TextIO

import yaml

PADDING = 3

TEXT = "text"
YAML = "yaml"
JSON = "json"
OUTPUT_CHOICES = [TEXT, YAML, JSON]


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Lay out rows in left aligned columns sized to the widest value."""
    table = [headers] + rows
    widths = [max(len(row[i]) for row in table) for i in range(len(headers))]
    for row in table:
        cells = [value.ljust(width + PADDING) for value, width in zip(row, widths)]
        yield "".join(cells).rstrip()


class PrintFormatter:
    """A formatter that prints a human readable table."""

    def __init__(self, keys: list[str]) -> None:
        """Initialize the PrintFormatter with the columns to print."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the rows, one line per row plus a header."""
        if not data:
            return
        headers = [key.upper() for key in self._keys]
        rows = [
            ["" if row.get(key) is None else str(row[key]) for key in self._keys]
            for row in data
        ]
        yield from format_columns(headers, rows)

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        """Output the rows."""
        for line in self.format(data):
            print(line, file=file)


class StructFormatter(ABC):
    """A formatter that prints structured objects."""

    @abstractmethod
    def dumps(self, data: Any) -> str:
        """Serialize the data objects."""

    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        """Print the data objects."""
        print(self.dumps(data), end="", file=file)


class YamlFormatter(StructFormatter):
    """A formatter that prints a YAML document."""

    def dumps(self, data: Any) -> str:
        return yaml.dump(data, sort_keys=False, explicit_start=True)


class JsonFormatter(StructFormatter):
    """A formatter that prints JSON."""

    def dumps(self, data: Any) -> str:
        return json.dumps(data, indent=2, sort_keys=False, default=str) + "\n"


def struct_formatter(output: str) -> StructFormatter:
    """Return the formatter for a structured output choice."""
    if output == JSON:
        return JsonFormatter()
    if output == YAML:
        return YamlFormatter()
    raise ValueError(f"Output format {output} is not structured")
