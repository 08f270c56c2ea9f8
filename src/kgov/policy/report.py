"""Human-readable and JSON rendering of reconciliation reports."""

from __future__ import annotations

import re
from typing import Any, Dict, List

from kgov.policy.models import ReconciliationReport, ReconciliationResult, ResultStatus


def _snake(status: ResultStatus) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", status.value).lower()


def render_result(result: ReconciliationResult) -> str:
    obj = result.object
    line = f"[{result.status.value}] {obj.kind} {obj.display_name}"
    return f"{line}: {result.detail}" if result.detail else line


def render_summary(report: ReconciliationReport) -> str:
    counts = report.counts()
    parts = " ".join(f"{_snake(status)}={counts[status]}" for status in ResultStatus)
    return f"Summary ({report.mode.value}): {parts}"


def render_report(report: ReconciliationReport) -> List[str]:
    return [render_result(r) for r in report.results] + [render_summary(report)]


def report_to_dict(report: ReconciliationReport) -> Dict[str, Any]:
    data = report.model_dump(mode="json", by_alias=True)
    data["counts"] = {status.value: n for status, n in report.counts().items()}
    data["exit_code"] = report.exit_code
    return data
