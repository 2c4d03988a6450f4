"""java_ci.io

Filesystem helpers and the build output layout.

Every JSON artifact (build-info.json, security-scan-report.json,
pipeline-manifest.json) goes through these writers so formatting stays stable
and an interrupted run never leaves half-written files behind.
"""

from __future__ import annotations

from .fs import read_json, write_json_atomic, write_text_atomic
from .layout import BuildPaths, next_build_number, prepare_build_paths

__all__ = [
    "BuildPaths",
    "next_build_number",
    "prepare_build_paths",
    "read_json",
    "write_json_atomic",
    "write_text_atomic",
]
