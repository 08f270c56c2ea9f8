"""ClusterClient backed by the kubectl binary."""

from __future__ import annotations

import json
import shutil
import subprocess
from typing import Any, Dict, List, Optional, Sequence

import yaml

from kgov.cluster.client import TERMINAL_PHASES, ClusterClient, PodRef
from kgov.cluster.errors import ApplyError, ClusterError, ClusterTimeout, PrerequisiteError
from kgov.utils.logging import get_logger

LOG = get_logger(__name__)

MANAGED_BY = {"app.kubernetes.io/managed-by": "kgov"}


def _error_text(proc: subprocess.CompletedProcess) -> str:
    text = (proc.stderr or proc.stdout or "").strip()
    return text or f"kubectl exited with status {proc.returncode}"


def _is_not_found(proc: subprocess.CompletedProcess) -> bool:
    # "Error from server (NotFound)"; a missing context or kubeconfig also says "not found"
    return "(NotFound)" in (proc.stderr or "")


class KubectlClient(ClusterClient):
    def __init__(
        self,
        kubectl: str = "kubectl",
        context: Optional[str] = None,
        kubeconfig: Optional[str] = None,
        request_timeout: Optional[float] = 20.0,
    ) -> None:
        self.kubectl = kubectl
        self.context = context
        self.kubeconfig = kubeconfig
        self.request_timeout = request_timeout

    def _base_cmd(self) -> List[str]:
        cmd = [self.kubectl]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        if self.context:
            cmd.extend(["--context", self.context])
        return cmd

    def _effective_timeout(self, timeout: Optional[float]) -> Optional[float]:
        limits = [t for t in (timeout, self.request_timeout) if t is not None]
        return min(limits) if limits else None

    def run_kubectl(
        self,
        args: List[str],
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        cmd = self._base_cmd() + args
        LOG.info("Running kubectl", extra={"cmd": " ".join(cmd)})
        try:
            return subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self._effective_timeout(timeout),
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ClusterTimeout(f"kubectl {args[0]} timed out") from exc
        except FileNotFoundError as exc:
            raise PrerequisiteError(f"{self.kubectl} is not installed or not in PATH") from exc

    def _get_json(self, args: List[str], timeout: Optional[float]) -> Optional[Dict[str, Any]]:
        proc = self.run_kubectl(["get", *args, "-o", "json"], timeout=timeout)
        if proc.returncode != 0:
            if _is_not_found(proc):
                return None
            raise ClusterError(_error_text(proc))
        try:
            return json.loads(proc.stdout)
        except ValueError as exc:
            raise ClusterError(f"unparseable kubectl output: {exc}") from exc

    def _mutate(self, args: List[str], stdin: Optional[str] = None, timeout: Optional[float] = None) -> None:
        proc = self.run_kubectl(args, stdin=stdin, timeout=timeout)
        if proc.returncode != 0:
            raise ApplyError(_error_text(proc))

    def _apply_manifest(self, manifest: Dict[str, Any], timeout: Optional[float]) -> None:
        """Replace the whole object, creating it when it does not exist yet.

        Keys present only on the live object are dropped, which
        ``kubectl apply`` would leave in place when they were never in the
        last-applied annotation.
        """
        stdin = yaml.safe_dump(manifest, sort_keys=False)
        proc = self.run_kubectl(["replace", "-f", "-"], stdin=stdin, timeout=timeout)
        if proc.returncode == 0:
            return
        if not _is_not_found(proc):
            raise ApplyError(_error_text(proc))
        self._mutate(["create", "-f", "-"], stdin=stdin, timeout=timeout)

    def check_prerequisites(self, timeout: Optional[float] = None) -> None:
        if shutil.which(self.kubectl) is None:
            raise PrerequisiteError(f"{self.kubectl} is not installed or not in PATH")
        try:
            proc = self.run_kubectl(["cluster-info"], timeout=timeout)
        except ClusterTimeout as exc:
            raise PrerequisiteError("Timed out connecting to Kubernetes cluster") from exc
        if proc.returncode != 0:
            raise PrerequisiteError(f"Cannot connect to Kubernetes cluster: {_error_text(proc)}")
        LOG.info("Prerequisites check passed")

    def get_namespace_labels(self, name: str, timeout: Optional[float] = None) -> Optional[Dict[str, str]]:
        obj = self._get_json(["namespace", name], timeout)
        if obj is None:
            return None
        return dict(obj.get("metadata", {}).get("labels") or {})

    def get_resource_quota(
        self, namespace: str, name: str, timeout: Optional[float] = None
    ) -> Optional[Dict[str, str]]:
        obj = self._get_json(["resourcequota", name, "-n", namespace], timeout)
        if obj is None:
            return None
        return {k: str(v) for k, v in (obj.get("spec", {}).get("hard") or {}).items()}

    def get_limit_range(
        self, namespace: str, name: str, timeout: Optional[float] = None
    ) -> Optional[List[Dict[str, Any]]]:
        obj = self._get_json(["limitrange", name, "-n", namespace], timeout)
        if obj is None:
            return None
        return list(obj.get("spec", {}).get("limits") or [])

    def list_terminal_pods(
        self, phases: Sequence[str] = TERMINAL_PHASES, timeout: Optional[float] = None
    ) -> List[PodRef]:
        obj = self._get_json(["pods", "--all-namespaces"], timeout) or {}
        pods: List[PodRef] = []
        for item in obj.get("items", []):
            phase = item.get("status", {}).get("phase", "")
            if phase in phases:
                meta = item.get("metadata", {})
                pods.append(PodRef(namespace=meta.get("namespace", ""), name=meta.get("name", ""), phase=phase))
        return pods

    def label_namespace(self, name: str, labels: Dict[str, str], timeout: Optional[float] = None) -> None:
        pairs = [f"{key}={value}" for key, value in labels.items()]
        self._mutate(["label", "namespace", name, *pairs, "--overwrite"], timeout=timeout)

    def apply_resource_quota(
        self, namespace: str, name: str, hard: Dict[str, str], timeout: Optional[float] = None
    ) -> None:
        manifest = {
            "apiVersion": "v1",
            "kind": "ResourceQuota",
            "metadata": {"name": name, "namespace": namespace, "labels": dict(MANAGED_BY)},
            "spec": {"hard": dict(hard)},
        }
        self._apply_manifest(manifest, timeout)

    def apply_limit_range(
        self, namespace: str, name: str, limits: List[Dict[str, Any]], timeout: Optional[float] = None
    ) -> None:
        manifest = {
            "apiVersion": "v1",
            "kind": "LimitRange",
            "metadata": {"name": name, "namespace": namespace, "labels": dict(MANAGED_BY)},
            "spec": {"limits": list(limits)},
        }
        self._apply_manifest(manifest, timeout)

    def delete_terminal_pods(self, phases: Sequence[str] = TERMINAL_PHASES, timeout: Optional[float] = None) -> None:
        for phase in phases:
            self._mutate(
                ["delete", "pods", "--all-namespaces", f"--field-selector=status.phase={phase}", "--wait=false"],
                timeout=timeout,
            )
