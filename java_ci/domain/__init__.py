"""java_ci.domain

Records that form the contract between pipeline stages and notifications.
"""

from __future__ import annotations

from .build import BUILD_INFO_TIMESTAMP_FORMAT, Artifact, BuildInfo, BuildInfoRecord

__all__ = [
    "Artifact",
    "BUILD_INFO_TIMESTAMP_FORMAT",
    "BuildInfo",
    "BuildInfoRecord",
]
