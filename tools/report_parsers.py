"""tools/report_parsers.py

Readers for the reports external tools leave behind.

The pipeline never reimplements a tool; it only needs numbers out of their
output:

* JUnit XML -> test totals
* JaCoCo XML -> line / branch coverage percentages
* Checkstyle / PMD / SpotBugs XML -> issue counts by severity
* Dependency-Check / ZAP / Snyk / Trivy JSON -> vulnerability counts

Every reader takes a list of paths and skips files that cannot be parsed, so
a half-written report never fails a build on its own. XML is read through
defusedxml because reports come from the project under build.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

SEVERITIES = ("critical", "high", "medium", "low")


def empty_counts() -> Dict[str, int]:
    return {s: 0 for s in SEVERITIES}


def add_counts(total: Dict[str, int], other: Dict[str, int]) -> Dict[str, int]:
    for s in SEVERITIES:
        total[s] = total.get(s, 0) + int(other.get(s, 0) or 0)
    return total


def _parse_xml(path: Path):
    try:
        return ET.parse(str(path)).getroot()
    except (ET.ParseError, DefusedXmlException, OSError):
        return None


def _parse_json(path: Path) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError):  # JSONDecodeError, UnicodeDecodeError
        return None


def _local(tag: str) -> str:
    """Strip an XML namespace: ``{ns}file`` -> ``file``."""
    return tag.rsplit("}", 1)[-1]


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Tests and coverage
# ---------------------------------------------------------------------------


def parse_junit_files(paths: Iterable[Path]) -> Dict[str, int]:
    totals = {"tests": 0, "failures": 0, "errors": 0, "skipped": 0}
    for path in paths:
        root = _parse_xml(path)
        if root is None:
            continue
        suites = list(root) if _local(root.tag) == "testsuites" else [root]
        for suite in suites:
            if _local(suite.tag) != "testsuite":
                continue
            for key in totals:
                totals[key] += _int(suite.attrib.get(key, 0))
    totals["passed"] = max(totals["tests"] - totals["failures"] - totals["errors"] - totals["skipped"], 0)
    return totals


def parse_jacoco_coverage(path: Path) -> Optional[Dict[str, float]]:
    """Line and branch coverage percentages from a JaCoCo XML report.

    Only the report-level counters are used (direct children of the root);
    package and class counters repeat the same lines.
    """
    root = _parse_xml(path)
    if root is None:
        return None
    counters = {c.attrib.get("type"): c for c in root if _local(c.tag) == "counter"}

    def pct(kind: str) -> float:
        c = counters.get(kind)
        if c is None:
            return 0.0
        covered = _int(c.attrib.get("covered"))
        total = covered + _int(c.attrib.get("missed"))
        return round(covered * 100.0 / total, 2) if total else 0.0

    return {"line": pct("LINE"), "branch": pct("BRANCH")}


# ---------------------------------------------------------------------------
# Static analysis
# ---------------------------------------------------------------------------

_CHECKSTYLE_SEVERITY = {"error": "high", "warning": "medium", "info": "low"}
_SPOTBUGS_PRIORITY = {1: "high", 2: "medium", 3: "low"}


def _pmd_severity(priority: int) -> str:
    if priority <= 1:
        return "critical"
    if priority == 2:
        return "high"
    if priority == 3:
        return "medium"
    return "low"


def parse_checkstyle_files(paths: Iterable[Path]) -> Dict[str, int]:
    counts = empty_counts()
    for path in paths:
        root = _parse_xml(path)
        if root is None:
            continue
        for el in root.iter():
            if _local(el.tag) == "error":
                sev = _CHECKSTYLE_SEVERITY.get(str(el.attrib.get("severity", "")).lower())
                if sev:
                    counts[sev] += 1
    return counts


def parse_pmd_files(paths: Iterable[Path]) -> Dict[str, int]:
    counts = empty_counts()
    for path in paths:
        root = _parse_xml(path)
        if root is None:
            continue
        for el in root.iter():
            if _local(el.tag) == "violation":
                counts[_pmd_severity(_int(el.attrib.get("priority"), 3))] += 1
    return counts


def parse_spotbugs_files(paths: Iterable[Path]) -> Dict[str, int]:
    counts = empty_counts()
    for path in paths:
        root = _parse_xml(path)
        if root is None:
            continue
        for el in root.iter():
            if _local(el.tag) != "BugInstance":
                continue
            rank = _int(el.attrib.get("rank"), 20)
            if rank <= 4:
                counts["critical"] += 1
            else:
                counts[_SPOTBUGS_PRIORITY.get(_int(el.attrib.get("priority"), 3), "low")] += 1
    return counts


# ---------------------------------------------------------------------------
# Security scanners
# ---------------------------------------------------------------------------


def _bump(counts: Dict[str, int], severity: Any) -> None:
    sev = str(severity or "").strip().lower()
    if sev in counts:
        counts[sev] += 1


def parse_dependency_check(path: Path) -> Dict[str, int]:
    counts = empty_counts()
    data = _parse_json(path)
    if isinstance(data, dict):
        for dep in data.get("dependencies") or []:
            for vuln in dep.get("vulnerabilities") or []:
                _bump(counts, vuln.get("severity"))
    return counts


def parse_trivy(path: Path) -> Dict[str, int]:
    counts = empty_counts()
    data = _parse_json(path)
    if isinstance(data, dict):
        for result in data.get("Results") or []:
            for vuln in result.get("Vulnerabilities") or []:
                _bump(counts, vuln.get("Severity"))
    return counts


def parse_snyk(path: Path) -> Dict[str, int]:
    """``snyk test --json`` prints one object, or a list for multi-project runs."""
    counts = empty_counts()
    data = _parse_json(path)
    projects = data if isinstance(data, list) else [data]
    for project in projects:
        if not isinstance(project, dict):
            continue
        for vuln in project.get("vulnerabilities") or []:
            _bump(counts, vuln.get("severity"))
    return counts


_ZAP_RISK = {3: "high", 2: "medium", 1: "low"}


def parse_zap(path: Path) -> Dict[str, int]:
    """ZAP risk codes: 3 high, 2 medium, 1 low, 0 informational (ignored)."""
    counts = empty_counts()
    data = _parse_json(path)
    if isinstance(data, dict):
        for site in data.get("site") or []:
            for alert in site.get("alerts") or []:
                sev = _ZAP_RISK.get(_int(alert.get("riskcode"), 0))
                if sev:
                    counts[sev] += 1
    return counts
