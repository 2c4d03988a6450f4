from __future__ import annotations

import argparse

from cli.commands.info import run_info_mode
from cli.commands.notify import run_notify_mode
from cli.commands.run import run_build
from cli.commands.test import run_test_mode
from cli.common import load_config
from pipeline.pipeline import JavaCIPipeline


def dispatch(args: argparse.Namespace, pipeline: JavaCIPipeline) -> int:
    """Route parsed args to the command for ``--mode``.

    Config errors propagate as :class:`pipeline.config.ConfigError`; the entry
    script maps them to exit code 2.
    """
    config = load_config(args)
    mode = args.mode or "run"

    if mode == "info":
        return int(run_info_mode(args, pipeline, config=config))
    if mode == "test":
        return int(run_test_mode(args, pipeline, config=config))
    if mode == "notify":
        return int(run_notify_mode(args, pipeline, config=config))

    config.validate()
    return int(run_build(args, pipeline, config=config))
