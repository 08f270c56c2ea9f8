"""Pure desired-vs-current comparison for each policy kind."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from kgov.cluster.client import PodRef
from kgov.policy.models import (
    DeltaKind,
    LimitRangeItem,
    LimitRangeSpec,
    NamespaceLabelSpec,
    PodCleanupSpec,
    PolicyKind,
    ResourceQuotaSpec,
)
from kgov.utils.quantity import diff_quantities


@dataclass(frozen=True)
class Delta:
    kind: DeltaKind
    changes: Tuple[str, ...] = ()

    @property
    def is_change(self) -> bool:
        return self.kind is not DeltaKind.NO_CHANGE

    def describe(self, dry_run: bool) -> str:
        if not self.is_change:
            return "already satisfied"
        text = ", ".join(self.changes) or self.kind.value.lower()
        return f"would {text}" if dry_run else text


NO_CHANGE = Delta(DeltaKind.NO_CHANGE)

# maxLimitRequestRatio and friends are not managed here
_LIMIT_FIELDS = ("type", "default", "defaultRequest", "max", "min")


def _format_changes(changes: Dict[str, tuple]) -> List[str]:
    lines = []
    for key in sorted(changes):
        have, want = changes[key]
        if have is None:
            lines.append(f"add {key} {want}")
        elif want is None:
            lines.append(f"remove {key} {have}")
        else:
            lines.append(f"update {key} {have} -> {want}")
    return lines


def _quota_delta(name: str, desired: ResourceQuotaSpec, current: Optional[Dict[str, str]]) -> Delta:
    if current is None:
        return Delta(DeltaKind.CREATE, (f"create ResourceQuota {name}",))
    changes = _format_changes(diff_quantities(desired.hard, current))
    return Delta(DeltaKind.UPDATE, tuple(changes)) if changes else NO_CHANGE


def _limit_range_delta(name: str, desired: LimitRangeSpec, current: Optional[List[Dict[str, Any]]]) -> Delta:
    if current is None:
        return Delta(DeltaKind.CREATE, (f"create LimitRange {name}",))
    have_by_type = {}
    for raw in current:
        item = LimitRangeItem.model_validate({k: v for k, v in raw.items() if k in _LIMIT_FIELDS})
        have_by_type[item.type] = item
    changes: Dict[str, tuple] = {}
    for want in desired.limits:
        want = want.effective()
        have = have_by_type.pop(want.type, None)
        if have is None:
            changes[want.type] = (None, "limits")
            continue
        for field in ("default", "default_request", "max", "min"):
            alias = LimitRangeItem.model_fields[field].alias or field
            changes.update(diff_quantities(getattr(want, field), getattr(have, field), prefix=f"{want.type}.{alias}."))
    for leftover in have_by_type:
        changes[leftover] = ("limits", None)
    lines = _format_changes(changes)
    return Delta(DeltaKind.UPDATE, tuple(lines)) if lines else NO_CHANGE


def _label_delta(desired: NamespaceLabelSpec, current: Optional[Dict[str, str]]) -> Delta:
    current = current or {}
    changes = []
    for key in sorted(desired.labels):
        want = desired.labels[key]
        have = current.get(key)
        if have is None:
            changes.append(f"set {key}={want}")
        elif have != want:
            changes.append(f"update {key} {have} -> {want}")
    return Delta(DeltaKind.UPDATE, tuple(changes)) if changes else NO_CHANGE


def _cleanup_delta(desired: PodCleanupSpec, current: Optional[List[PodRef]]) -> Delta:
    pods = [pod for pod in current or [] if pod.phase in desired.phases]
    if not pods:
        return NO_CHANGE
    return Delta(DeltaKind.UPDATE, (f"delete {len(pods)} terminal pods",))


def compute_delta(kind: PolicyKind, name: str, desired: BaseModel, current: Any) -> Delta:
    """Compare a validated desired spec against a current-state snapshot.

    ``current`` is whatever the cluster client returned for the kind: the quota's
    ``spec.hard``, the limit range's ``spec.limits``, the namespace labels, or the
    list of terminal pods. ``None`` means the object does not exist yet.
    """
    if kind is PolicyKind.RESOURCE_QUOTA:
        return _quota_delta(name, desired, current)
    if kind is PolicyKind.LIMIT_RANGE:
        return _limit_range_delta(name, desired, current)
    if kind is PolicyKind.NAMESPACE_LABEL_SET:
        return _label_delta(desired, current)
    if kind is PolicyKind.POD_CLEANUP_RULE:
        return _cleanup_delta(desired, current)
    raise ValueError("unsupported kind")
