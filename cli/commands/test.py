from __future__ import annotations

import argparse

from cli.common import build_run_request
from pipeline.config import PipelineConfig
from pipeline.orchestrator import TestRequest
from pipeline.pipeline import JavaCIPipeline


def run_test_mode(args: argparse.Namespace, pipeline: JavaCIPipeline, *, config: PipelineConfig) -> int:
    req = TestRequest(run=build_run_request(args, config), kind=str(args.test_type))

    print(f"\n🚀 Running {req.kind} tests")
    print(f"  Workspace : {req.run.workspace}")

    code = int(pipeline.test(req))
    if code == 0:
        print("\n✅ Tests completed.")
    else:
        print(f"\n⚠️ Tests finished with exit code {code}")
    return code
