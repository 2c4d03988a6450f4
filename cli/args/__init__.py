"""CLI argument builder modules.

The top-level :mod:`ci_cli` stays thin. Groups of flags are
registered via small "arg builder" functions housed here.

Each module exposes a single public function:

- :func:`cli.args.base.add_base_args`
- :func:`cli.args.pipeline_flags.add_pipeline_args`
"""

from __future__ import annotations

__all__ = [
    "base",
    "pipeline_flags",
]
