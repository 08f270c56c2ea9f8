import copy
import time
from typing import Any, Dict, List, Optional, Sequence

import pytest

from kgov.cluster.client import TERMINAL_PHASES, ClusterClient, PodRef
from kgov.cluster.errors import ApplyError, ClusterTimeout, PrerequisiteError


class FakeCluster(ClusterClient):
    """In-memory cluster; records every mutating call."""

    def __init__(self, namespaces: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        self.namespaces: Dict[str, Dict[str, str]] = namespaces if namespaces is not None else {}
        self.quotas: Dict[tuple, Dict[str, str]] = {}
        self.limit_ranges: Dict[tuple, List[Dict[str, Any]]] = {}
        self.pods: List[PodRef] = []
        self.mutations: List[tuple] = []
        self.reachable = True
        self.reject: Dict[str, str] = {}
        self.hang_on: Optional[str] = None

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(
            {"namespaces": self.namespaces, "quotas": self.quotas, "limits": self.limit_ranges, "pods": self.pods}
        )

    def _maybe_hang(self, op: str, timeout: Optional[float] = None) -> None:
        if self.hang_on == op:
            # a hung call uses up whatever budget it was given
            if timeout:
                time.sleep(timeout + 0.01)
            raise ClusterTimeout(f"{op} timed out")

    def _mutation(self, op: str, target: str, timeout: Optional[float] = None) -> None:
        self._maybe_hang(op, timeout)
        if target in self.reject:
            raise ApplyError(self.reject[target])
        self.mutations.append((op, target))

    def check_prerequisites(self, timeout: Optional[float] = None) -> None:
        if not self.reachable:
            raise PrerequisiteError("Cannot connect to Kubernetes cluster")

    def get_namespace_labels(self, name: str, timeout: Optional[float] = None) -> Optional[Dict[str, str]]:
        self._maybe_hang("get_namespace", timeout)
        labels = self.namespaces.get(name)
        return None if labels is None else dict(labels)

    def get_resource_quota(self, namespace: str, name: str, timeout: Optional[float] = None) -> Optional[Dict[str, str]]:
        quota = self.quotas.get((namespace, name))
        return None if quota is None else dict(quota)

    def get_limit_range(
        self, namespace: str, name: str, timeout: Optional[float] = None
    ) -> Optional[List[Dict[str, Any]]]:
        limits = self.limit_ranges.get((namespace, name))
        return None if limits is None else copy.deepcopy(limits)

    def list_terminal_pods(self, phases: Sequence[str] = TERMINAL_PHASES, timeout: Optional[float] = None) -> List[PodRef]:
        return [pod for pod in self.pods if pod.phase in phases]

    def label_namespace(self, name: str, labels: Dict[str, str], timeout: Optional[float] = None) -> None:
        self._mutation("label_namespace", name, timeout)
        self.namespaces[name].update(labels)

    def apply_resource_quota(
        self, namespace: str, name: str, hard: Dict[str, str], timeout: Optional[float] = None
    ) -> None:
        self._mutation("apply_resource_quota", f"{namespace}/{name}", timeout)
        self.quotas[(namespace, name)] = dict(hard)

    def apply_limit_range(
        self, namespace: str, name: str, limits: List[Dict[str, Any]], timeout: Optional[float] = None
    ) -> None:
        self._mutation("apply_limit_range", f"{namespace}/{name}", timeout)
        stored = []
        # server-side defaulting: max fills default; default, then min, fill defaultRequest
        for item in copy.deepcopy(limits):
            if item.get("type") == "Container":
                item["default"] = {**item.get("max", {}), **item.get("default", {})}
                item["defaultRequest"] = {
                    **item.get("min", {}),
                    **item["default"],
                    **item.get("defaultRequest", {}),
                }
            stored.append(item)
        self.limit_ranges[(namespace, name)] = stored

    def delete_terminal_pods(self, phases: Sequence[str] = TERMINAL_PHASES, timeout: Optional[float] = None) -> None:
        self._mutation("delete_terminal_pods", ",".join(phases), timeout)
        self.pods = [pod for pod in self.pods if pod.phase not in phases]


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster(namespaces={"blog": {}, "monitoring": {"team": "ops"}})
