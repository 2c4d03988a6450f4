"""pipeline.wiring

Composition root: the one place the runner is assembled.

Entry points call :func:`build_pipeline` first, so values from ``.env``
(webhook URLs, SMTP settings, scanner tokens, credentials) are in
``os.environ`` before any workspace copies it, and then
:func:`configure_logging` once.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv as _load_dotenv

from pipeline.core import ROOT_DIR
from pipeline.pipeline import JavaCIPipeline


ENV_PATH: Path = ROOT_DIR / ".env"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def load_dotenv_if_present(dotenv_path: Path = ENV_PATH) -> bool:
    """Load ``KEY=VALUE`` lines into ``os.environ``; real env vars win."""
    if not dotenv_path.exists():
        return False
    return bool(_load_dotenv(dotenv_path, override=False))


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once for CLI runs."""
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


def build_pipeline(*, load_dotenv: bool = True) -> JavaCIPipeline:
    """Build the high-level pipeline facade."""
    if load_dotenv:
        load_dotenv_if_present(ENV_PATH)

    return JavaCIPipeline()
