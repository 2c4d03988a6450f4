"""tools/core_cmd.py

Process helpers used by :class:`tools.workspace.Workspace`.

* :func:`run_cmd` - run a build tool or scanner to completion and capture
  its output (no ``shell=True``).
* :func:`spawn_background` / :func:`stop_background` - the application under
  a DAST scan, with output going to a log file.
* :func:`mask_secrets` - hide credentials before a command line is logged.

Only this module starts processes.
"""

from __future__ import annotations

import os
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

# Exit code reported for a command that hit its timeout (coreutils ``timeout``).
TIMEOUT_EXIT_CODE = 124

MASK = "****"


@dataclass(frozen=True)
class CmdResult:
    exit_code: int
    elapsed_seconds: float
    command_str: str
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def mask_secrets(text: str, secrets: Iterable[str]) -> str:
    for s in secrets:
        if s:
            text = text.replace(s, MASK)
    return text


def _child_env(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    """*env* layered over ``os.environ``; None inherits it unchanged."""
    if env is None:
        return None
    merged = os.environ.copy()
    merged.update(env)
    return merged


def run_cmd(
    cmd: List[str],
    *,
    cwd: Optional[Path] = None,
    timeout_seconds: int = 0,
    env: Optional[Dict[str, str]] = None,
    print_stderr: bool = True,
    print_stdout: bool = False,
) -> CmdResult:
    """Run *cmd* and capture stdout/stderr.

    Non-zero exits are returned, not raised; a missing binary raises
    ``FileNotFoundError``.
    """
    command_str = " ".join(cmd)
    t0 = time.time()
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            text=True,
            capture_output=True,
            timeout=timeout_seconds if timeout_seconds > 0 else None,
            env=_child_env(env),
        )
    except subprocess.TimeoutExpired as e:
        return CmdResult(
            exit_code=TIMEOUT_EXIT_CODE,
            elapsed_seconds=time.time() - t0,
            command_str=command_str,
            stdout=e.stdout if isinstance(e.stdout, str) else "",
            stderr=e.stderr if isinstance(e.stderr, str) else "",
        )

    # Maven and Gradle write progress to stderr even on success.
    if print_stderr and proc.stderr:
        print(proc.stderr, file=sys.stderr)
    if print_stdout and proc.stdout:
        print(proc.stdout)

    return CmdResult(
        exit_code=proc.returncode,
        elapsed_seconds=time.time() - t0,
        command_str=command_str,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )


def spawn_background(
    cmd: List[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    log_path: Path,
) -> subprocess.Popen:
    """Start *cmd* with stdout and stderr going to *log_path*.

    The caller stops it with :func:`stop_background`.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("w", encoding="utf-8") as log_file:
        # Popen duplicates the handle, so closing ours is safe.
        return subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd else None,
            env=_child_env(env),
            stdout=log_file,
            stderr=subprocess.STDOUT,
            text=True,
        )


def stop_background(proc: subprocess.Popen, *, timeout_seconds: int = 20) -> None:
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait(timeout=timeout_seconds)
