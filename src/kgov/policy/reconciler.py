"""Idempotent reconciler for cluster governance objects."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ValidationError

from kgov.cluster.client import ClusterClient
from kgov.cluster.errors import ClusterError, ClusterTimeout
from kgov.monitoring.metrics import observe_result, set_run_gauges
from kgov.monitoring.profiler import timed
from kgov.policy.delta import Delta, compute_delta
from kgov.policy.models import (
    SPEC_MODELS,
    LimitRangeSpec,
    Mode,
    NamespaceLabelSpec,
    PodCleanupSpec,
    PolicyKind,
    PolicyObject,
    ReconciliationReport,
    ReconciliationResult,
    ResourceQuotaSpec,
    ResultStatus,
)
from kgov.utils.logging import get_logger
from kgov.utils.time import Deadline, current_run_id, utcnow

LOG = get_logger(__name__)

TIMEOUT_DETAIL = "timeout"


def _validation_detail(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


class PolicyReconciler:
    """Converges live cluster state toward an ordered set of policy objects.

    The reconciler holds no cluster context of its own; every read and write goes
    through the ``client`` it was built with.
    """

    def __init__(self, client: ClusterClient) -> None:
        self.client = client

    def check_namespace_exists(self, name: str, timeout: Optional[float] = None) -> bool:
        return self.client.namespace_exists(name, timeout=timeout)

    def read_current(
        self,
        kind: PolicyKind,
        name: str,
        target_namespace: Optional[str],
        desired: BaseModel,
        timeout: Optional[float] = None,
    ) -> Any:
        if kind is PolicyKind.RESOURCE_QUOTA:
            return self.client.get_resource_quota(target_namespace, name, timeout=timeout)
        if kind is PolicyKind.LIMIT_RANGE:
            return self.client.get_limit_range(target_namespace, name, timeout=timeout)
        if kind is PolicyKind.NAMESPACE_LABEL_SET:
            return self.client.get_namespace_labels(target_namespace, timeout=timeout)
        if kind is PolicyKind.POD_CLEANUP_RULE:
            return self.client.list_terminal_pods(desired.phases, timeout=timeout)
        raise ValueError("unsupported kind")

    def compute_delta(
        self,
        kind: PolicyKind | str,
        target_namespace: Optional[str],
        desired_spec: BaseModel | Dict[str, Any],
        name: str = "",
        timeout: Optional[float] = None,
    ) -> Delta:
        """Snapshot current state for the object and compare it with ``desired_spec``."""
        kind = kind if isinstance(kind, PolicyKind) else PolicyKind.parse(kind)
        if kind is None:
            raise ValueError("unsupported kind")
        desired = desired_spec if isinstance(desired_spec, BaseModel) else SPEC_MODELS[kind].model_validate(desired_spec)
        current = self.read_current(kind, name, target_namespace, desired, timeout=timeout)
        return compute_delta(kind, name, desired, current)

    def _mutate(self, kind: PolicyKind, obj: PolicyObject, desired: BaseModel, timeout: Optional[float]) -> None:
        if kind is PolicyKind.RESOURCE_QUOTA:
            self.client.apply_resource_quota(obj.target_namespace, obj.name, desired.hard, timeout=timeout)
        elif kind is PolicyKind.LIMIT_RANGE:
            limits = [item.to_manifest() for item in desired.limits]
            self.client.apply_limit_range(obj.target_namespace, obj.name, limits, timeout=timeout)
        elif kind is PolicyKind.NAMESPACE_LABEL_SET:
            self.client.label_namespace(obj.target_namespace, desired.labels, timeout=timeout)
        elif kind is PolicyKind.POD_CLEANUP_RULE:
            # cluster-wide, not scoped to obj.target_namespace
            self.client.delete_terminal_pods(desired.phases, timeout=timeout)

    def _reconcile(self, obj: PolicyObject, dry_run: bool, deadline: Deadline) -> ReconciliationResult:
        try:
            desired = obj.typed_spec()
        except ValidationError as exc:
            return ReconciliationResult(
                object=obj, status=ResultStatus.FAILED, detail=f"invalid spec: {_validation_detail(exc)}"
            )
        except ValueError as exc:
            detail = str(exc) if str(exc) == "unsupported kind" else f"invalid spec: {exc}"
            return ReconciliationResult(object=obj, status=ResultStatus.FAILED, detail=detail)
        kind = obj.parsed_kind()

        try:
            if obj.target_namespace and not self.check_namespace_exists(
                obj.target_namespace, timeout=deadline.remaining()
            ):
                return ReconciliationResult(
                    object=obj,
                    status=ResultStatus.SKIPPED,
                    detail=f"namespace {obj.target_namespace} not found",
                )
            delta = self.compute_delta(kind, obj.target_namespace, desired, name=obj.name, timeout=deadline.remaining())
            if dry_run:
                return ReconciliationResult(
                    object=obj, status=ResultStatus.WOULD_APPLY, detail=delta.describe(dry_run=True), delta=delta.kind
                )
            if delta.is_change:
                self._mutate(kind, obj, desired, timeout=deadline.remaining())
            return ReconciliationResult(
                object=obj, status=ResultStatus.APPLIED, detail=delta.describe(dry_run=False), delta=delta.kind
            )
        except ClusterTimeout:
            return ReconciliationResult(object=obj, status=ResultStatus.FAILED, detail=TIMEOUT_DETAIL)
        except ClusterError as exc:
            return ReconciliationResult(object=obj, status=ResultStatus.FAILED, detail=str(exc) or type(exc).__name__)
        except Exception as exc:
            LOG.exception("Unexpected error reconciling policy object", extra={"object": obj.display_name})
            return ReconciliationResult(
                object=obj, status=ResultStatus.FAILED, detail=f"unexpected error: {type(exc).__name__}: {exc}"
            )

    def run(
        self,
        mode: Mode,
        objects: Sequence[PolicyObject],
        timeout: Optional[float] = None,
        run_id: Optional[str] = None,
    ) -> ReconciliationReport:
        """Reconcile ``objects`` in apply order and return the report.

        Only a PrerequisiteError from the client escapes; every per-object
        problem is recorded in the report. A single call timing out fails only
        its object. When the ``timeout`` budget for the whole run is used up
        the in-flight object is marked Failed and the remaining objects are
        not attempted.
        """
        if not objects:
            raise ValueError("objects must not be empty")
        seen = set()
        for obj in objects:
            if obj.key in seen:
                raise ValueError(f"duplicate policy object {obj.kind} {obj.display_name}")
            seen.add(obj.key)

        deadline = Deadline(timeout)
        dry_run = mode is Mode.DRY_RUN
        started_at = utcnow()
        self.client.check_prerequisites(timeout=deadline.remaining())

        results: List[ReconciliationResult] = []
        for obj in sorted(objects, key=lambda o: o.apply_order):
            with timed() as timing:
                if deadline.expired():
                    result = ReconciliationResult(object=obj, status=ResultStatus.FAILED, detail=TIMEOUT_DETAIL)
                else:
                    result = self._reconcile(obj, dry_run, deadline)
            result = result.model_copy(update={"duration_seconds": timing.duration})
            results.append(result)
            observe_result(obj.kind, result.status.value, timing.duration)
            self._log_result(result)
            if deadline.expired() and result.detail == TIMEOUT_DETAIL:
                LOG.error("Run deadline exceeded", extra={"processed": len(results), "total": len(objects)})
                break

        report = ReconciliationReport(
            run_id=run_id or current_run_id(),
            mode=mode,
            started_at=started_at,
            finished_at=utcnow(),
            results=tuple(results),
        )
        set_run_gauges(mode.value, report.failed, report.finished_at.timestamp())
        LOG.info(
            "Reconciliation finished",
            extra={"run_id": report.run_id, "mode": mode.value, **{s.value: n for s, n in report.counts().items()}},
        )
        return report

    @staticmethod
    def _log_result(result: ReconciliationResult) -> None:
        extra = {
            "kind": result.object.kind,
            "object": result.object.display_name,
            "status": result.status.value,
            "detail": result.detail,
        }
        if result.status is ResultStatus.SKIPPED:
            LOG.warning("Policy object skipped", extra=extra)
        elif result.status is ResultStatus.FAILED:
            LOG.error("Policy object failed", extra=extra)
        else:
            LOG.info("Policy object reconciled", extra=extra)
