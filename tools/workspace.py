"""tools/workspace.py

The host primitives every pipeline step needs.

Tool wrappers never call ``subprocess`` or copy report files themselves. They
receive a :class:`Workspace`, which owns:

* the checkout directory and the environment tools run with
* command execution (``sh``), with dry-run and quiet modes
* archiving files and publishing HTML reports into the build output folder
* the build state (result, display name, description)

Tests swap the command runner for a recorder, so no external tool is needed
to exercise the wrappers.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from java_ci.io.fs import read_json, write_json_atomic
from java_ci.io.layout import BuildPaths, safe_name

from .core_cmd import CmdResult, mask_secrets, run_cmd, spawn_background, stop_background

logger = logging.getLogger(__name__)

SUCCESS = "SUCCESS"
UNSTABLE = "UNSTABLE"
FAILURE = "FAILURE"

_RESULT_ORDER = {SUCCESS: 0, UNSTABLE: 1, FAILURE: 2}

Runner = Callable[..., CmdResult]
Patterns = Union[str, Sequence[str]]


class PipelineError(RuntimeError):
    """Fails the build."""


class CommandError(PipelineError):
    """A command exited non-zero."""

    def __init__(self, result: CmdResult, message: Optional[str] = None) -> None:
        self.result = result
        super().__init__(message or f"'{result.command_str}' exited with code {result.exit_code}")


@dataclass
class BuildState:
    result: str = SUCCESS
    display_name: Optional[str] = None
    description: Optional[str] = None

    def mark(self, result: str) -> None:
        """Move the result towards FAILURE; never improves it."""
        if result not in _RESULT_ORDER:
            raise ValueError(f"Unknown build result: {result}")
        if _RESULT_ORDER[result] > _RESULT_ORDER[self.result]:
            self.result = result


@dataclass(frozen=True)
class PublishedReport:
    name: str
    title: str
    path: Path
    files: List[str] = field(default_factory=list)


def split_patterns(patterns: Patterns) -> List[str]:
    """Accept ``"a,b"`` or ``["a", "b"]``."""
    if isinstance(patterns, str):
        raw = patterns.split(",")
    else:
        raw = [p for item in patterns for p in str(item).split(",")]
    return [p.strip() for p in raw if p.strip()]


class Workspace:
    def __init__(
        self,
        root: Union[str, Path],
        *,
        paths: BuildPaths,
        env: Optional[Mapping[str, str]] = None,
        runner: Runner = run_cmd,
        dry_run: bool = False,
        quiet: bool = False,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.paths = paths
        self.env: Dict[str, str] = dict(env or {})
        self.state = BuildState()
        self.dry_run = dry_run
        self.quiet = quiet
        self.archived: List[str] = []
        self.reports: List[PublishedReport] = []
        self._runner = runner
        self._secrets: List[str] = []

    # ------------------------------------------------------------------
    # Logging / failure
    # ------------------------------------------------------------------

    def echo(self, message: str) -> None:
        logger.info(mask_secrets(message, self._secrets))

    def warn(self, message: str) -> None:
        logger.warning(mask_secrets(message, self._secrets))

    def error(self, message: str) -> None:
        raise PipelineError(mask_secrets(message, self._secrets))

    def add_secret(self, value: Optional[str]) -> None:
        if value and value not in self._secrets:
            self._secrets.append(value)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def path(self, rel: Union[str, Path]) -> Path:
        return self.root / rel

    def file_exists(self, rel: Union[str, Path]) -> bool:
        return self.path(rel).exists()

    def glob(self, patterns: Patterns, *, excludes: Patterns = ()) -> List[str]:
        """Return sorted workspace-relative POSIX paths of matching files."""
        if not self.root.exists():
            return []
        excluded = set()
        for pat in split_patterns(excludes):
            excluded.update(p.relative_to(self.root).as_posix() for p in self.root.glob(pat) if p.is_file())

        found = set()
        for pat in split_patterns(patterns):
            for p in self.root.glob(pat):
                if p.is_file():
                    rel = p.relative_to(self.root).as_posix()
                    if rel not in excluded:
                        found.add(rel)
        return sorted(found)

    def write_json(self, rel: Union[str, Path], data: Any) -> Path:
        p = self.path(rel)
        write_json_atomic(p, data)
        return p

    def read_json(self, rel: Union[str, Path]) -> Any:
        return read_json(self.path(rel))

    def archive(self, patterns: Patterns, *, allow_empty: bool = True, excludes: Patterns = ()) -> List[str]:
        """Copy matching files into the build's artifacts folder."""
        matches = self.glob(patterns, excludes=excludes)
        if not matches:
            if allow_empty:
                self.echo(f"No files to archive for: {patterns}")
                return []
            self.error(f"No artifacts found that match the file pattern '{patterns}'")

        for rel in matches:
            dest = self.paths.artifacts_dir / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(self.path(rel), dest)
            if rel not in self.archived:
                self.archived.append(rel)
        self.echo(f"Archived {len(matches)} file(s) for: {patterns}")
        return matches

    def publish_html(
        self,
        *,
        report_dir: str,
        report_files: str,
        report_name: str,
        report_title: str,
        allow_missing: bool = True,
    ) -> Optional[PublishedReport]:
        """Copy an HTML report directory under ``reports/<report name>``."""
        src = self.path(report_dir)
        if not src.is_dir():
            if allow_missing:
                self.echo(f"{report_name}: report directory '{report_dir}' not found, skipping")
                return None
            self.error(f"{report_name}: report directory '{report_dir}' not found")

        files = split_patterns(report_files)
        if not allow_missing:
            missing = [f for f in files if not (src / f).exists()]
            if missing:
                self.error(f"{report_name}: missing report files {missing}")

        dest = self.paths.reports_dir / safe_name(report_name)
        shutil.copytree(src, dest, dirs_exist_ok=True)
        report = PublishedReport(name=report_name, title=report_title, path=dest, files=files)
        self.reports = [r for r in self.reports if r.name != report_name] + [report]
        self.echo(f"Published {report_name} -> {dest}")
        return report

    def delete_dir(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def which(self, bin_name: str) -> Optional[str]:
        return shutil.which(bin_name, path=self.env.get("PATH"))

    @contextmanager
    def with_env(self, extra: Mapping[str, Any]) -> Iterator[None]:
        saved = {k: self.env.get(k) for k in extra}
        self.env.update({str(k): str(v) for k, v in extra.items()})
        try:
            yield
        finally:
            for k, old in saved.items():
                if old is None:
                    self.env.pop(k, None)
                else:
                    self.env[k] = old

    def sh(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        timeout_seconds: int = 0,
        env: Optional[Mapping[str, str]] = None,
    ) -> CmdResult:
        """Run *cmd* in the workspace root.

        With ``check`` a non-zero exit raises :class:`CommandError`.
        """
        argv = [str(c) for c in cmd]
        shown = mask_secrets(" ".join(argv), self._secrets)
        self.echo(f"+ {shown}")
        if self.dry_run:
            self.echo("  (dry-run: not executing)")
            return CmdResult(exit_code=0, elapsed_seconds=0.0, command_str=shown, stdout="", stderr="")

        run_env = dict(self.env)
        if env:
            run_env.update(env)

        res = self._runner(
            argv,
            cwd=self.root,
            timeout_seconds=timeout_seconds,
            env=run_env,
            print_stderr=not self.quiet,
            print_stdout=not self.quiet,
        )
        if check and res.exit_code != 0:
            raise CommandError(res, f"'{shown}' exited with code {res.exit_code}")
        return res

    def sh_output(self, cmd: Sequence[str], **kwargs: Any) -> str:
        return (self.sh(cmd, **kwargs).stdout or "").strip()

    def spawn(self, cmd: Sequence[str], *, log_file: str) -> Optional[subprocess.Popen]:
        """Start a background process; None in dry-run."""
        argv = [str(c) for c in cmd]
        self.echo(f"+ (background) {' '.join(argv)}")
        if self.dry_run:
            return None
        return spawn_background(argv, cwd=self.root, env=dict(self.env), log_path=self.path(log_file))

    def stop(self, proc: Optional[subprocess.Popen]) -> None:
        if proc is not None:
            stop_background(proc)
