"""java_ci.domain.build

Records threaded through one pipeline run.

* :class:`Artifact` - a file produced by the build (usually a JAR)
* :class:`BuildInfo` - what notifications say about the build
* :class:`BuildInfoRecord` - the ``build-info.json`` artifact

The pipeline historically passed these around as loose maps. The dataclasses
keep field names in one place; ``to_dict`` emits the camelCase keys that
notification templates and ``build-info.json`` consumers expect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

BUILD_INFO_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _str_or_none(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


@dataclass(frozen=True)
class Artifact:
    name: str
    path: str
    size: Optional[int] = None
    checksum: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "path": self.path}
        if self.size is not None:
            out["size"] = self.size
        if self.checksum is not None:
            out["checksum"] = self.checksum
        return out


@dataclass(frozen=True)
class BuildInfo:
    """Build facts used by the notifier."""

    app_name: str
    build_number: str
    version: Optional[str] = None
    commit: Optional[str] = None
    branch: Optional[str] = None
    build_url: Optional[str] = None
    error: Optional[str] = None
    previous_result: Optional[str] = None

    @staticmethod
    def from_dict(raw: Mapping[str, Any]) -> "BuildInfo":
        return BuildInfo(
            app_name=str(raw.get("appName") or "Unknown"),
            build_number=str(raw.get("buildNumber") or "0"),
            version=_str_or_none(raw.get("version")),
            commit=_str_or_none(raw.get("commit")),
            branch=_str_or_none(raw.get("branch")),
            build_url=_str_or_none(raw.get("buildUrl")),
            error=_str_or_none(raw.get("error")),
            previous_result=_str_or_none(raw.get("previousResult")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "appName": self.app_name,
            "version": self.version,
            "buildNumber": self.build_number,
            "commit": self.commit,
            "branch": self.branch,
            "buildUrl": self.build_url,
            "error": self.error,
            "previousResult": self.previous_result,
        }


@dataclass(frozen=True)
class BuildInfoRecord:
    """Contents of ``build-info.json``."""

    build_number: str
    version: str
    commit: Optional[str]
    timestamp: str
    artifacts: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def build(
        *,
        build_number: str,
        version: str,
        commit: Optional[str],
        artifacts: List[Artifact],
        metadata: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> "BuildInfoRecord":
        ts = (now or datetime.now(timezone.utc)).strftime(BUILD_INFO_TIMESTAMP_FORMAT)
        return BuildInfoRecord(
            build_number=str(build_number),
            version=str(version),
            commit=commit,
            timestamp=ts,
            artifacts=[a.name for a in artifacts],
            metadata=dict(metadata or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buildNumber": self.build_number,
            "version": self.version,
            "commit": self.commit,
            "timestamp": self.timestamp,
            "artifacts": list(self.artifacts),
            "metadata": dict(self.metadata),
        }
