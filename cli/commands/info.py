from __future__ import annotations

import argparse

from cli.common import build_run_request
from pipeline.config import PipelineConfig
from pipeline.pipeline import JavaCIPipeline


def run_info_mode(args: argparse.Namespace, pipeline: JavaCIPipeline, *, config: PipelineConfig) -> int:
    return int(pipeline.info(build_run_request(args, config)))
