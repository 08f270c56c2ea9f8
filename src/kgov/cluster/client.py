"""Cluster client interface consumed by the reconciler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

TERMINAL_PHASES = ("Succeeded", "Failed")


@dataclass(frozen=True)
class PodRef:
    namespace: str
    name: str
    phase: str


class ClusterClient(ABC):
    """Primitive read/write operations against the cluster control plane.

    Every method takes an optional ``timeout`` in seconds. Implementations raise
    :class:`~kgov.cluster.errors.ClusterTimeout` when it is exceeded and
    :class:`~kgov.cluster.errors.ClusterError` for any other failure. Reads
    return ``None`` for objects that do not exist.
    """

    @abstractmethod
    def check_prerequisites(self, timeout: Optional[float] = None) -> None:
        """Raise PrerequisiteError if the cluster cannot be reached."""

    @abstractmethod
    def get_namespace_labels(self, name: str, timeout: Optional[float] = None) -> Optional[Dict[str, str]]:
        """Labels of namespace ``name``, or ``None`` when it does not exist."""

    def namespace_exists(self, name: str, timeout: Optional[float] = None) -> bool:
        return self.get_namespace_labels(name, timeout=timeout) is not None

    @abstractmethod
    def get_resource_quota(
        self, namespace: str, name: str, timeout: Optional[float] = None
    ) -> Optional[Dict[str, str]]:
        """``spec.hard`` of the quota, or ``None``."""

    @abstractmethod
    def get_limit_range(
        self, namespace: str, name: str, timeout: Optional[float] = None
    ) -> Optional[List[Dict[str, Any]]]:
        """``spec.limits`` of the limit range, or ``None``."""

    @abstractmethod
    def list_terminal_pods(
        self, phases: Sequence[str] = TERMINAL_PHASES, timeout: Optional[float] = None
    ) -> List[PodRef]:
        """Pods in any namespace whose phase is one of ``phases``."""

    @abstractmethod
    def label_namespace(self, name: str, labels: Dict[str, str], timeout: Optional[float] = None) -> None:
        """Set ``labels`` on the namespace, overwriting existing values."""

    @abstractmethod
    def apply_resource_quota(
        self, namespace: str, name: str, hard: Dict[str, str], timeout: Optional[float] = None
    ) -> None:
        """Create or replace the quota's ``spec.hard``."""

    @abstractmethod
    def apply_limit_range(
        self, namespace: str, name: str, limits: List[Dict[str, Any]], timeout: Optional[float] = None
    ) -> None:
        """Create or replace the limit range's ``spec.limits``."""

    @abstractmethod
    def delete_terminal_pods(self, phases: Sequence[str] = TERMINAL_PHASES, timeout: Optional[float] = None) -> None:
        """Delete every pod in any namespace whose phase is one of ``phases``."""
