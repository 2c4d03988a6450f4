"""java_ci

Core package for the Java CI pipeline runner.

This package owns the contracts shared by the tool wrappers (``tools``) and
the orchestration layer (``pipeline``):

* domain records (build info, artifacts)
* filesystem writers used for every JSON artifact the pipeline emits

It must not import from ``tools`` or ``pipeline``.
"""

from __future__ import annotations
