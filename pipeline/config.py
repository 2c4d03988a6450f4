"""pipeline.config

Pipeline configuration: defaults, merging and validation.

A pipeline definition is a nested mapping, usually a YAML file, e.g.::

    appName: petclinic
    version: 3.2.0
    buildTool: maven
    scm:
      url: https://github.com/spring-projects/spring-petclinic.git
    testConfig:
      integrationTests:
        enabled: true

User values are merged over :data:`DEFAULTS`. Nested maps merge recursively;
lists and scalars replace. Top-level keys may be written in camelCase or
snake_case; unknown top-level keys are ignored.
"""

from __future__ import annotations

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)

SUPPORTED_BUILD_TOOLS = ("maven", "gradle")

DEFAULTS: Dict[str, Any] = {
    "appName": None,
    "version": None,
    "buildTool": "maven",
    "scm": {
        "url": "",
        "branch": "main",
        "credentialsId": "",
        "skipCheckout": False,
    },
    "buildConfig": {
        "sourceCompatibility": "11",
        "targetCompatibility": "11",
        "buildArgs": [],
        "environment": {},
        "jvmOpts": "",
        "parallel": True,
        "skipBuildStaticChecks": True,
        "generateDocs": False,
        "buildDockerImage": True,
    },
    "testConfig": {
        "unitTests": {
            "enabled": True,
            "skip": False,
            "parallel": True,
            "forkCount": 1,
            "includes": ["**/*Test.class"],
            "excludes": ["**/*IT.class"],
        },
        "integrationTests": {
            "enabled": False,
            "includes": ["**/*IT.class"],
            "excludes": [],
            "systemProperties": {},
            "environment": {},
        },
        "staticAnalysis": {
            "enabled": True,
            "tools": ["checkstyle", "pmd", "spotbugs"],
            "qualityGates": {"maxCritical": 0, "maxHigh": 5, "maxTotal": 20},
        },
    },
    "security": {
        "scan": {
            "enabled": False,
            "tools": ["owasp", "dependency-check"],
            "failOnVulnerability": True,
            "excludePatterns": [],
        },
        "credentials": {},
    },
    "performance": {
        "enabled": False,
        "tool": "jmeter",
        "config": {},
        "thresholds": {},
        "failOnThreshold": True,
        "artifactsPath": "performance-reports",
    },
    "artifacts": {
        "publish": True,
        "repository": {"type": "nexus", "url": "", "credentialsId": ""},
        "include": ["**/target/*.jar", "**/build/libs/*.jar"],
        "exclude": ["**/*-sources.jar", "**/*-javadoc.jar"],
    },
    "qualityGates": {
        "enabled": True,
        "sonar": {
            "enabled": True,
            "serverUrl": "http://sonar:9000",
            "qualityGateWait": 300,
            "timeout": 10,
        },
        "coverage": {"minLineCoverage": 70.0, "minBranchCoverage": 60.0},
    },
    "notifications": {
        "onSuccess": True,
        "onFailure": True,
        "onUnstable": True,
        "channels": ["console"],
        "email": {"recipients": "team@example.com", "sendToIndividuals": False},
        "slack": {
            "channel": "#builds",
            "notifySuccess": True,
            "notifyFailure": True,
            "notifyBackToNormal": True,
        },
    },
    "metadata": {},
}

_SNAKE = re.compile(r"_([a-z0-9])")


class ConfigError(ValueError):
    """Invalid pipeline configuration."""


def camel_key(key: str) -> str:
    """``app_name`` -> ``appName``; camelCase keys pass through."""
    return _SNAKE.sub(lambda m: m.group(1).upper(), key)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a new dict: *override* merged into *base*.

    Maps merge recursively; anything else (lists included) replaces.
    """
    out = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(out.get(key), Mapping):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def _field(key: str) -> property:
    return property(lambda self: self._data[key])


class PipelineConfig:
    def __init__(self, config: Optional[Mapping[str, Any]] = None) -> None:
        data = copy.deepcopy(DEFAULTS)
        for raw_key, value in (config or {}).items():
            key = camel_key(str(raw_key))
            if key not in data:
                logger.debug("Ignoring unknown config key: %s", raw_key)
                continue
            if isinstance(value, Mapping) and isinstance(data[key], Mapping):
                data[key] = deep_merge(data[key], value)
            else:
                data[key] = copy.deepcopy(value)

        if isinstance(data["buildTool"], str):
            data["buildTool"] = data["buildTool"].strip().lower()
        self._data = data

    app_name = _field("appName")
    version = _field("version")
    build_tool = _field("buildTool")
    scm = _field("scm")
    build_config = _field("buildConfig")
    test_config = _field("testConfig")
    security = _field("security")
    performance = _field("performance")
    artifacts = _field("artifacts")
    quality_gates = _field("qualityGates")
    notifications = _field("notifications")
    metadata = _field("metadata")

    @classmethod
    def from_yaml(cls, path: Union[str, Path], overrides: Optional[Mapping[str, Any]] = None) -> "PipelineConfig":
        p = Path(path)
        try:
            raw = yaml.safe_load(p.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {p}: {e}") from e
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ConfigError(f"Pipeline config must be a mapping at the top level: {p}")
        return cls(raw).merged(overrides or {})

    def merged(self, overrides: Mapping[str, Any]) -> "PipelineConfig":
        """A new config with *overrides* merged over this one."""
        data = self.to_dict()
        for raw_key, value in overrides.items():
            key = camel_key(str(raw_key))
            if isinstance(value, Mapping) and isinstance(data.get(key), Mapping):
                data[key] = deep_merge(data[key], value)
            else:
                data[key] = copy.deepcopy(value)
        return PipelineConfig(data)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def validate(self) -> None:
        if not self.app_name:
            raise ConfigError("appName is required")
        if not self.version:
            raise ConfigError("version is required")
        if not (self.scm or {}).get("url"):
            raise ConfigError("scm.url is required")
        if self.build_tool not in SUPPORTED_BUILD_TOOLS:
            raise ConfigError(f"Unsupported build tool: {self.build_tool}")

        unit = self.test_config.get("unitTests") or {}
        if unit.get("enabled") and unit.get("parallel"):
            cpu_cores = os.cpu_count() or 1
            fork_count = int(unit.get("forkCount") or 0)
            if fork_count > cpu_cores * 2:
                logger.warning(
                    "forkCount (%s) is higher than recommended (%s)", fork_count, cpu_cores * 2
                )

        scan = self.security.get("scan") or {}
        if scan.get("enabled") and not scan.get("tools"):
            raise ConfigError("At least one security scan tool must be specified")
