from __future__ import annotations

import argparse

from cli.common import build_run_request
from pipeline.config import PipelineConfig
from pipeline.pipeline import JavaCIPipeline


def run_build(args: argparse.Namespace, pipeline: JavaCIPipeline, *, config: PipelineConfig) -> int:
    req = build_run_request(args, config)

    print("\n🚀 Running pipeline")
    print(f"  App       : {config.app_name} v{config.version}")
    print(f"  Build tool: {config.build_tool}")
    print(f"  Workspace : {req.workspace}")

    code = int(pipeline.run(req))
    if code == 0:
        print("\n✅ Pipeline completed.")
    elif code == 3:
        print("\n⚠️ Pipeline completed but the build is UNSTABLE")
    else:
        print(f"\n❌ Pipeline failed (exit code {code})")
    return code
