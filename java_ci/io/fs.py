"""java_ci.io.fs

Atomic filesystem writers.

Later stages read back the JSON a stage wrote (the security summary, the
last build result), so a half-written file must never appear under the final
name. Each write goes to a temp file in the target directory and is moved
into place with ``os.replace()``.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Union

PathLike = Union[str, Path]


def write_text_atomic(path: PathLike, text: str, *, encoding: str = "utf-8") -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f"{p.name}.", suffix=".tmp", dir=str(p.parent))
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, p)
    finally:
        if tmp.exists():
            tmp.unlink()


def write_json_atomic(path: PathLike, data: Any, *, indent: int = 2) -> None:
    """Write *data* as JSON, keeping key order.

    build-info.json and the manifests are read by people; their field order
    is part of the format. Values JSON cannot encode (paths, datetimes) are
    written with ``str()``.
    """
    text = json.dumps(data, indent=indent, ensure_ascii=False, default=str)
    write_text_atomic(path, text + "\n")


def read_json(path: PathLike, *, encoding: str = "utf-8") -> Any:
    with Path(path).open("r", encoding=encoding) as f:
        return json.load(f)
