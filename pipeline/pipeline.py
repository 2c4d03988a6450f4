"""pipeline.pipeline

A *single, high-level* object that represents this repo's primary
capabilities.

The operational code lives in several places:

- :mod:`pipeline.orchestrator` contains the entrypoints (full run, info,
  tests only, notify).
- :mod:`pipeline.config` holds configuration defaults and validation.
- :mod:`tools` holds the per-stage implementations (build, tests, analysis,
  security, notifications).

Callers (CLI, scripts, other CI runners) should not wire those modules
directly. The :class:`JavaCIPipeline` facade gives them one obvious front
door:

- ``run(...)``: the full pipeline
- ``info(...)``: print the build information banner
- ``test(...)``: unit or integration tests only
- ``notify(...)``: send one notification

The facade is thin: it delegates to the orchestrator functions. Tests swap
those functions out through the constructor.
"""

from __future__ import annotations

from collections.abc import Callable

from pipeline.orchestrator import (
    NotifyRequest,
    RunRequest,
    TestRequest,
    run_info,
    run_notify,
    run_pipeline,
    run_tests,
)


class JavaCIPipeline:
    """High-level facade over the pipeline.

    Build it via :func:`pipeline.wiring.build_pipeline` rather than importing
    the low-level modules directly.
    """

    def __init__(
        self,
        *,
        run_fn: Callable[[RunRequest], int] = run_pipeline,
        info_fn: Callable[[RunRequest], int] = run_info,
        test_fn: Callable[[TestRequest], int] = run_tests,
        notify_fn: Callable[[NotifyRequest], int] = run_notify,
    ) -> None:
        self._run_fn = run_fn
        self._info_fn = info_fn
        self._test_fn = test_fn
        self._notify_fn = notify_fn

    def run(self, req: RunRequest) -> int:
        """Run every stage; returns the build's exit code."""
        return int(self._run_fn(req))

    def info(self, req: RunRequest) -> int:
        return int(self._info_fn(req))

    def test(self, req: TestRequest) -> int:
        """Run only the unit or integration tests in an existing workspace."""
        return int(self._test_fn(req))

    def notify(self, req: NotifyRequest) -> int:
        return int(self._notify_fn(req))
