from __future__ import annotations

import argparse

from cli.common import build_run_request
from pipeline.config import PipelineConfig
from pipeline.orchestrator import NotifyRequest
from pipeline.pipeline import JavaCIPipeline


def run_notify_mode(args: argparse.Namespace, pipeline: JavaCIPipeline, *, config: PipelineConfig) -> int:
    req = NotifyRequest(run=build_run_request(args, config), status=str(args.status), error=args.error)
    channels = ", ".join(str(c) for c in config.notifications.get("channels") or ["console"])

    print(f"\n🚀 Sending {req.status} notification")
    print(f"  Channels : {channels}")

    code = int(pipeline.notify(req))
    if code == 0:
        print("\n✅ Notification sent.")
    else:
        print("\n⚠️ One or more channels failed; see the log above")
    return code
