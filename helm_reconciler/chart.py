"""Library for loading a chart bundle from local disk.

A chart is a directory laid out the way `helm create` scaffolds one:

```
mychart/
  Chart.yaml          name, version and appVersion of the chart
  values.yaml         default values
  templates/
    _helpers.tpl      partials, never rendered on their own
    deployment.yaml
    service.yaml
    NOTES.txt         rendered as release notes, never as resources
```
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import aiofiles
import yaml

from .exceptions import InputException
from .values import read_values_file

__all__ = [
    "Chart",
    "load_chart",
]

_LOGGER = logging.getLogger(__name__)

CHART_FILE = "Chart.yaml"
VALUES_FILE = "values.yaml"
TEMPLATES_DIR = "templates"
NOTES_FILE = "NOTES.txt"
TEMPLATE_SUFFIXES = {".yaml", ".yml", ".tpl", ".txt"}


@dataclass
class Chart:
    """A chart bundle: metadata, default values and template sources."""

    name: str
    """The name of the chart."""

    version: str
    """The version of the chart."""

    app_version: str | None = None
    """The version of the application packaged by the chart."""

    description: str | None = None
    """Human readable description from Chart.yaml."""

    defaults: dict[str, Any] = field(default_factory=dict)
    """Default values from values.yaml."""

    templates: dict[str, str] = field(default_factory=dict)
    """Template sources keyed by path relative to the templates directory."""

    path: Path | None = None
    """Local directory the chart was loaded from."""

    @property
    def full_name(self) -> str:
        """Name and version of the chart, e.g. `app-0.1.0`."""
        return f"{self.name}-{self.version}"

    @property
    def manifest_templates(self) -> list[str]:
        """Names of the templates that produce resources, in render order."""
        return sorted(
            name
            for name in self.templates
            if not Path(name).name.startswith("_")
            and Path(name).name != NOTES_FILE
            and Path(name).suffix in (".yaml", ".yml")
        )

    @property
    def notes_template(self) -> str | None:
        """Name of the release notes template, if the chart has one."""
        return NOTES_FILE if NOTES_FILE in self.templates else None


async def _read_text(path: Path) -> str:
    async with aiofiles.open(str(path)) as file:
        return await file.read()


async def load_chart(path: Path) -> Chart:
    """Load a chart bundle from a local directory."""
    if not path.is_dir():
        raise InputException(f"Chart path {path} is not a directory")
    chart_file = path / CHART_FILE
    if not chart_file.exists():
        raise InputException(f"Chart path {path} is missing {CHART_FILE}")
    try:
        metadata = yaml.load(await _read_text(chart_file), Loader=yaml.SafeLoader)
    except yaml.YAMLError as err:
        raise InputException(f"Invalid {chart_file}: {err}") from err
    if not isinstance(metadata, dict):
        raise InputException(f"Invalid {chart_file}: expected a mapping")
    if not (name := metadata.get("name")):
        raise InputException(f"Invalid {chart_file} missing name")
    if not (version := metadata.get("version")):
        raise InputException(f"Invalid {chart_file} missing version")

    defaults: dict[str, Any] = {}
    if (values_file := path / VALUES_FILE).exists():
        defaults = await read_values_file(values_file)

    templates: dict[str, str] = {}
    templates_dir = path / TEMPLATES_DIR
    if templates_dir.is_dir():
        for template_path in sorted(templates_dir.rglob("*")):
            if not template_path.is_file():
                continue
            if template_path.suffix not in TEMPLATE_SUFFIXES:
                _LOGGER.debug("Skipping non-template file %s", template_path)
                continue
            relative = template_path.relative_to(templates_dir).as_posix()
            templates[relative] = await _read_text(template_path)

    _LOGGER.debug(
        "Loaded chart %s-%s with %d templates", name, version, len(templates)
    )
    return Chart(
        name=str(name),
        version=str(version),
        app_version=(
            str(metadata["appVersion"]) if metadata.get("appVersion") else None
        ),
        description=metadata.get("description"),
        defaults=defaults,
        templates=templates,
        path=path,
    )
