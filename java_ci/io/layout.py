"""java_ci.io.layout

Canonical build output layout.

Every pipeline run writes into one directory::

  <output_root>/<app_name>/<build_number>/
    artifacts/              archived files (jars, build-info.json, XML reports)
    reports/<slug>/         published HTML reports
    pipeline-manifest.json  stage results

and keeps a pointer to the most recent result next to the build folders::

  <output_root>/<app_name>/last-result.json
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

_NON_SLUG = re.compile(r"[^A-Za-z0-9_.-]+")


def safe_name(value: str) -> str:
    """Turn an app or report name into a filesystem-safe folder name."""
    out = _NON_SLUG.sub("-", str(value or "").strip()).strip("-").lower()
    return out or "app"


@dataclass(frozen=True)
class BuildPaths:
    """Canonical artifact paths for one pipeline run."""

    build_dir: Path
    artifacts_dir: Path
    reports_dir: Path
    manifest: Path
    last_result: Path

    @property
    def build_number(self) -> str:
        return self.build_dir.name


def next_build_number(app_dir: Path) -> str:
    """Return the next free integer build number under *app_dir*."""
    if not app_dir.exists():
        return "1"
    numbers = [int(d.name) for d in app_dir.iterdir() if d.is_dir() and d.name.isdigit()]
    return str(max(numbers) + 1) if numbers else "1"


def prepare_build_paths(
    output_root: Union[str, Path],
    app_name: str,
    *,
    build_number: Optional[str] = None,
) -> BuildPaths:
    """Create (if needed) and return the output folders for one build."""
    app_dir = Path(output_root).expanduser().resolve() / safe_name(app_name)
    app_dir.mkdir(parents=True, exist_ok=True)

    number = str(build_number).strip() if build_number else next_build_number(app_dir)
    build_dir = app_dir / number
    artifacts_dir = build_dir / "artifacts"
    reports_dir = build_dir / "reports"
    artifacts_dir.mkdir(parents=True, exist_ok=True)
    reports_dir.mkdir(parents=True, exist_ok=True)

    return BuildPaths(
        build_dir=build_dir,
        artifacts_dir=artifacts_dir,
        reports_dir=reports_dir,
        manifest=build_dir / "pipeline-manifest.json",
        last_result=app_dir / "last-result.json",
    )
