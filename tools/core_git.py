"""tools/core_git.py

Git helpers for the checked-out application.

Two jobs:

1) Acquire the sources: shallow-clone ``scm.url`` into an empty workspace, or
   refresh an existing clone (fetch, hard checkout, ``git clean -fdx``).
2) Read commit metadata the later stages stamp into versions, notifications
   and ``build-info.json``.

Every command goes through :meth:`Workspace.sh`, so dry-run and the test
runner apply here too.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple
from urllib.parse import quote, urlsplit, urlunsplit

from .workspace import Workspace

_NON_ENV = re.compile(r"[^A-Za-z0-9]+")


@dataclass(frozen=True)
class CheckoutResult:
    cloned: bool
    commit: str
    branch: str


def get_repo_name(repo_url: str) -> str:
    """Turn a Git URL into a simple repo name.

    Examples:
      https://github.com/acme/petclinic.git -> "petclinic"
      git@github.com:acme/petclinic.git    -> "petclinic"
    """
    last = repo_url.rstrip("/").split("/")[-1].split(":")[-1]
    return last[:-4] if last.endswith(".git") else last


def credentials_env_prefix(credentials_id: str) -> str:
    """``github-creds`` -> ``GITHUB_CREDS``."""
    return _NON_ENV.sub("_", credentials_id).strip("_").upper()


def resolve_credentials(credentials_id: str, env: Mapping[str, str]) -> Optional[Tuple[str, str]]:
    """Look up ``<ID>_USERNAME`` and ``<ID>_PASSWORD`` (or ``<ID>_TOKEN``).

    Returns None when the id is empty or no secret is set.
    """
    if not credentials_id:
        return None
    prefix = credentials_env_prefix(credentials_id)
    secret = env.get(f"{prefix}_PASSWORD") or env.get(f"{prefix}_TOKEN")
    if not secret:
        return None
    return env.get(f"{prefix}_USERNAME") or "git", secret


def with_credentials(url: str, username: str, secret: str) -> str:
    """Embed credentials in an http(s) URL; other schemes are returned unchanged."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return url
    host = parts.netloc.rsplit("@", 1)[-1]
    netloc = f"{quote(username, safe='')}:{quote(secret, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def is_git_repo(ws: Workspace) -> bool:
    return ws.file_exists(".git")


def checkout(ws: Workspace, *, url: str, branch: str = "main", credentials_id: str = "") -> CheckoutResult:
    """Clone or refresh the workspace at *branch* of *url*."""
    remote = url
    creds = resolve_credentials(credentials_id, ws.env)
    if creds:
        ws.add_secret(creds[1])
        remote = with_credentials(url, *creds)
    elif credentials_id:
        ws.warn(f"No credentials found in the environment for '{credentials_id}'; cloning anonymously")

    if is_git_repo(ws):
        ws.echo(f"Updating existing clone to {branch}")
        ws.sh(["git", "fetch", "--depth", "1", remote, branch])
        ws.sh(["git", "checkout", "-f", "-B", branch, "FETCH_HEAD"])
        ws.sh(["git", "clean", "-fdx"])
        cloned = False
    else:
        if ws.root.exists() and any(ws.root.iterdir()):
            ws.error(f"Workspace {ws.root} is not empty and is not a git clone")
        ws.root.mkdir(parents=True, exist_ok=True)
        ws.echo(f"Cloning {get_repo_name(url)} ({branch})")
        ws.sh(["git", "clone", "--depth", "1", "--branch", branch, remote, "."])
        cloned = True

    return CheckoutResult(cloned=cloned, commit=get_commit(ws), branch=branch)


def get_commit(ws: Workspace) -> str:
    return ws.sh_output(["git", "rev-parse", "HEAD"])


def get_short_commit(ws: Workspace, length: int = 8) -> str:
    return get_commit(ws)[:length]


def get_branch(ws: Workspace) -> str:
    return ws.sh_output(["git", "rev-parse", "--abbrev-ref", "HEAD"])


def get_remote_url(ws: Workspace) -> str:
    return ws.sh_output(["git", "config", "--get", "remote.origin.url"], check=False)


def get_commit_message(ws: Workspace) -> str:
    return ws.sh_output(["git", "log", "-1", "--pretty=%B"])


def get_commit_author_email(ws: Workspace) -> Optional[str]:
    """Email of the last commit's author, or None if unavailable."""
    res = ws.sh(["git", "log", "-1", "--pretty=%ae"], check=False)
    email = (res.stdout or "").strip()
    return email if res.exit_code == 0 and email else None
