# pipeline/core.py
from __future__ import annotations

from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]

# Where build folders land unless --output-root says otherwise.
DEFAULT_OUTPUT_ROOT = ROOT_DIR / "runs" / "builds"

# Picked up from the workspace when --config is not given.
DEFAULT_CONFIG_NAMES = ("pipeline.yml", "pipeline.yaml", ".java-ci.yml")


def find_default_config(workspace: Path) -> Path | None:
    for name in DEFAULT_CONFIG_NAMES:
        p = workspace / name
        if p.is_file():
            return p
    return None
