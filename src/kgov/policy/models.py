"""Policy objects, typed desired specs and reconciliation results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from kgov.cluster.client import TERMINAL_PHASES
from kgov.utils.quantity import parse_quantity

POD_SECURITY_PREFIX = "pod-security.kubernetes.io/"
POD_SECURITY_MODES = ("enforce", "audit", "warn")
POD_SECURITY_LEVELS = ("privileged", "baseline", "restricted")


class PolicyKind(str, Enum):
    RESOURCE_QUOTA = "ResourceQuota"
    LIMIT_RANGE = "LimitRange"
    NAMESPACE_LABEL_SET = "NamespaceLabelSet"
    POD_CLEANUP_RULE = "PodCleanupRule"

    @classmethod
    def parse(cls, value: str) -> Optional["PolicyKind"]:
        try:
            return cls(value)
        except ValueError:
            return None


class Mode(str, Enum):
    APPLY = "apply"
    DRY_RUN = "dry-run"


class ResultStatus(str, Enum):
    APPLIED = "Applied"
    WOULD_APPLY = "WouldApply"
    SKIPPED = "Skipped"
    FAILED = "Failed"


class DeltaKind(str, Enum):
    NO_CHANGE = "NoChange"
    CREATE = "Create"
    UPDATE = "Update"


def _quantity_map(value: Dict[str, Any]) -> Dict[str, str]:
    result = {}
    for key, qty in (value or {}).items():
        parse_quantity(qty)
        result[str(key)] = str(qty)
    return result


class ResourceQuotaSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hard: Dict[str, str] = Field(..., min_length=1)

    @field_validator("hard", mode="before")
    @classmethod
    def _check_quantities(cls, value: Dict[str, Any]) -> Dict[str, str]:
        return _quantity_map(value)


class LimitRangeItem(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: str = "Container"
    default: Dict[str, str] = Field(default_factory=dict)
    default_request: Dict[str, str] = Field(default_factory=dict, alias="defaultRequest")
    max: Dict[str, str] = Field(default_factory=dict)
    min: Dict[str, str] = Field(default_factory=dict)

    @field_validator("default", "default_request", "max", "min", mode="before")
    @classmethod
    def _check_quantities(cls, value: Dict[str, Any]) -> Dict[str, str]:
        return _quantity_map(value)

    def effective(self) -> "LimitRangeItem":
        """Apply the API server's defaulting.

        max fills default, then default fills defaultRequest, then min fills
        whatever defaultRequest still lacks.
        """
        if self.type != "Container":
            return self
        default = {**self.max, **self.default}
        default_request = {**self.min, **default, **self.default_request}
        return self.model_copy(update={"default": default, "default_request": default_request})

    def to_manifest(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        return {key: value for key, value in data.items() if value}


class LimitRangeSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limits: List[LimitRangeItem] = Field(..., min_length=1)


class NamespaceLabelSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    labels: Dict[str, str] = Field(..., min_length=1)

    @field_validator("labels")
    @classmethod
    def _check_pod_security(cls, value: Dict[str, str]) -> Dict[str, str]:
        for key, level in value.items():
            if not key.startswith(POD_SECURITY_PREFIX):
                continue
            mode = key[len(POD_SECURITY_PREFIX):]
            if mode in POD_SECURITY_MODES and level not in POD_SECURITY_LEVELS:
                raise ValueError(f"{key} must be one of {', '.join(POD_SECURITY_LEVELS)}, got {level!r}")
        return value


class PodCleanupSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    phases: List[str] = Field(default_factory=lambda: list(TERMINAL_PHASES), min_length=1)

    @field_validator("phases")
    @classmethod
    def _check_phases(cls, value: List[str]) -> List[str]:
        unknown = [p for p in value if p not in TERMINAL_PHASES]
        if unknown:
            raise ValueError(f"not terminal phases: {', '.join(unknown)}")
        return value


SPEC_MODELS: Dict[PolicyKind, Type[BaseModel]] = {
    PolicyKind.RESOURCE_QUOTA: ResourceQuotaSpec,
    PolicyKind.LIMIT_RANGE: LimitRangeSpec,
    PolicyKind.NAMESPACE_LABEL_SET: NamespaceLabelSpec,
    PolicyKind.POD_CLEANUP_RULE: PodCleanupSpec,
}


class PolicyObject(BaseModel):
    """One declarative governance artifact to converge toward."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    kind: str
    target_namespace: Optional[str] = Field(default=None, alias="namespace")
    desired_spec: Dict[str, Any] = Field(default_factory=dict, alias="spec")
    apply_order: int = Field(default=0, alias="order")

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.kind, self.target_namespace or "", self.name)

    @property
    def display_name(self) -> str:
        return f"{self.target_namespace}/{self.name}" if self.target_namespace else self.name

    def parsed_kind(self) -> Optional[PolicyKind]:
        return PolicyKind.parse(self.kind)

    def typed_spec(self) -> BaseModel:
        """Validate ``desired_spec`` against the model for this kind.

        Raises ValueError for unsupported kinds, missing namespaces on
        namespaced kinds, and pydantic's ValidationError for bad payloads.
        """
        kind = self.parsed_kind()
        if kind is None:
            raise ValueError("unsupported kind")
        if kind is not PolicyKind.POD_CLEANUP_RULE and not self.target_namespace:
            raise ValueError(f"{kind.value} requires a namespace")
        return SPEC_MODELS[kind].model_validate(self.desired_spec)


class ReconciliationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    object: PolicyObject
    status: ResultStatus
    detail: Optional[str] = None
    delta: Optional[DeltaKind] = None
    duration_seconds: float = 0.0

    @model_validator(mode="after")
    def _detail_required(self) -> "ReconciliationResult":
        if self.status in (ResultStatus.SKIPPED, ResultStatus.FAILED) and not self.detail:
            raise ValueError(f"detail is required for {self.status.value} results")
        return self


class ReconciliationReport(BaseModel):
    """Outcome of one run, in apply order."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    mode: Mode
    started_at: datetime
    finished_at: datetime
    results: Tuple[ReconciliationResult, ...] = ()

    def counts(self) -> Dict[ResultStatus, int]:
        totals = {status: 0 for status in ResultStatus}
        for result in self.results:
            totals[result.status] += 1
        return totals

    @property
    def failed(self) -> bool:
        return any(r.status is ResultStatus.FAILED for r in self.results)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def statuses(self) -> List[ResultStatus]:
        return [r.status for r in self.results]
