import json
import subprocess
from typing import List

import pytest
import yaml

from kgov.cluster import kubectl as kubectl_mod
from kgov.cluster.errors import ApplyError, ClusterError, ClusterTimeout, PrerequisiteError
from kgov.cluster.kubectl import KubectlClient
from kgov.policy.models import Mode, PolicyObject, ResultStatus
from kgov.policy.reconciler import PolicyReconciler


class Recorder:
    def __init__(self, *responses: subprocess.CompletedProcess) -> None:
        self.responses = list(responses)
        self.calls: List[dict] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append({"cmd": cmd, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def done(stdout: str = "", stderr: str = "", code: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=code, stdout=stdout, stderr=stderr)


def test_context_and_kubeconfig_are_explicit(monkeypatch) -> None:
    rec = Recorder(done(json.dumps({"metadata": {"labels": {"a": "b"}}})))
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    client = KubectlClient(context="do-fra1", kubeconfig="/tmp/kubeconfig", request_timeout=20)
    assert client.get_namespace_labels("blog", timeout=5) == {"a": "b"}
    call = rec.calls[0]
    assert call["cmd"] == [
        "kubectl", "--kubeconfig", "/tmp/kubeconfig", "--context", "do-fra1",
        "get", "namespace", "blog", "-o", "json",
    ]
    assert call["timeout"] == 5


def test_not_found_reads_return_none(monkeypatch) -> None:
    rec = Recorder(done(stderr='Error from server (NotFound): namespaces "blog" not found', code=1))
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    assert KubectlClient().namespace_exists("blog") is False


def test_other_read_errors_raise(monkeypatch) -> None:
    rec = Recorder(done(stderr="Error from server (Forbidden): forbidden", code=1))
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    with pytest.raises(ClusterError, match="Forbidden"):
        KubectlClient().get_resource_quota("blog", "blog-quota")


def test_apply_quota_replaces_whole_manifest(monkeypatch) -> None:
    rec = Recorder(done("resourcequota/blog-quota replaced"))
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    KubectlClient().apply_resource_quota("blog", "blog-quota", {"requests.cpu": "1000m"})
    call = rec.calls[0]
    assert call["cmd"] == ["kubectl", "replace", "-f", "-"]
    manifest = yaml.safe_load(call["input"])
    assert manifest["kind"] == "ResourceQuota"
    assert manifest["metadata"]["namespace"] == "blog"
    assert manifest["spec"]["hard"] == {"requests.cpu": "1000m"}


def test_rejected_mutation_raises_apply_error(monkeypatch) -> None:
    rec = Recorder(done(stderr="namespaces \"blog\" is forbidden", code=1))
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    with pytest.raises(ApplyError, match="forbidden"):
        KubectlClient().label_namespace("blog", {"pod-security.kubernetes.io/enforce": "baseline"})
    assert rec.calls[0]["cmd"][-1] == "--overwrite"


def test_terminal_pods_listed_and_deleted_cluster_wide(monkeypatch) -> None:
    pods = {
        "items": [
            {"metadata": {"namespace": "blog", "name": "job"}, "status": {"phase": "Succeeded"}},
            {"metadata": {"namespace": "blog", "name": "web"}, "status": {"phase": "Running"}},
        ]
    }
    rec = Recorder(done(json.dumps(pods)), done(), done())
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    client = KubectlClient()
    assert [p.name for p in client.list_terminal_pods()] == ["job"]
    client.delete_terminal_pods()
    deletes = [c["cmd"] for c in rec.calls[1:]]
    assert all("--all-namespaces" in cmd for cmd in deletes)
    assert "--field-selector=status.phase=Succeeded" in deletes[0]
    assert "--field-selector=status.phase=Failed" in deletes[1]


def test_subprocess_timeout_becomes_cluster_timeout(monkeypatch) -> None:
    rec = Recorder(subprocess.TimeoutExpired(cmd="kubectl", timeout=1))
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    with pytest.raises(ClusterTimeout):
        KubectlClient().get_limit_range("blog", "blog-limits", timeout=1)


def test_prerequisites(monkeypatch) -> None:
    monkeypatch.setattr(kubectl_mod.shutil, "which", lambda name: None)
    with pytest.raises(PrerequisiteError, match="not installed"):
        KubectlClient().check_prerequisites()

    monkeypatch.setattr(kubectl_mod.shutil, "which", lambda name: "/usr/bin/kubectl")
    monkeypatch.setattr(kubectl_mod.subprocess, "run", Recorder(done(stderr="connection refused", code=1)))
    with pytest.raises(PrerequisiteError, match="Cannot connect"):
        KubectlClient().check_prerequisites()

    monkeypatch.setattr(kubectl_mod.subprocess, "run", Recorder(done("Kubernetes control plane is running")))
    KubectlClient().check_prerequisites()


def test_apply_creates_when_object_missing(monkeypatch) -> None:
    rec = Recorder(
        done(stderr='Error from server (NotFound): error when replacing "STDIN": limitranges "blog-limits" not found', code=1),
        done("limitrange/blog-limits created"),
    )
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    KubectlClient().apply_limit_range("blog", "blog-limits", [{"type": "Container", "max": {"cpu": "1"}}])
    assert [c["cmd"] for c in rec.calls] == [["kubectl", "replace", "-f", "-"], ["kubectl", "create", "-f", "-"]]
    assert rec.calls[0]["input"] == rec.calls[1]["input"]


def test_rejected_replace_does_not_create(monkeypatch) -> None:
    rec = Recorder(done(stderr="Error from server (Forbidden): resourcequotas is forbidden", code=1))
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    with pytest.raises(ApplyError, match="Forbidden"):
        KubectlClient().apply_resource_quota("blog", "blog-quota", {"pods": "10"})
    assert len(rec.calls) == 1


def test_unparseable_output_raises_cluster_error(monkeypatch) -> None:
    rec = Recorder(done("Warning: v1 ComponentStatus is deprecated\n{}"))
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    with pytest.raises(ClusterError, match="unparseable kubectl output"):
        KubectlClient().get_resource_quota("blog", "blog-quota")


def test_missing_context_is_not_a_missing_object(monkeypatch) -> None:
    rec = Recorder(done(stderr='error: context "do-fra1" not found', code=1))
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    with pytest.raises(ClusterError, match="context"):
        KubectlClient(context="do-fra1").namespace_exists("blog")


BLOG_NS = json.dumps({"metadata": {"name": "blog", "labels": {}}})
OBJECTS = [
    PolicyObject(name="blog-quota", kind="ResourceQuota", namespace="blog", order=10, spec={"hard": {"pods": "10"}}),
    PolicyObject(
        name="blog-pss",
        kind="NamespaceLabelSet",
        namespace="blog",
        order=20,
        spec={"labels": {"pod-security.kubernetes.io/enforce": "baseline"}},
    ),
]


def _reconcile(monkeypatch, *responses) -> tuple:
    rec = Recorder(done("Kubernetes control plane is running"), *responses)
    monkeypatch.setattr(kubectl_mod.shutil, "which", lambda name: "/usr/bin/kubectl")
    monkeypatch.setattr(kubectl_mod.subprocess, "run", rec)
    return PolicyReconciler(KubectlClient()).run(Mode.APPLY, OBJECTS, run_id="t"), rec


def test_kubectl_timeout_fails_object_and_run_continues(monkeypatch) -> None:
    report, rec = _reconcile(
        monkeypatch,
        subprocess.TimeoutExpired(cmd="kubectl", timeout=20),
        done(BLOG_NS),
        done(BLOG_NS),
        done("namespace/blog labeled"),
    )
    assert report.statuses() == [ResultStatus.FAILED, ResultStatus.APPLIED]
    assert report.results[0].detail == "timeout"
    assert rec.calls[-1]["cmd"][:3] == ["kubectl", "label", "namespace"]


def test_unparseable_read_fails_object_instead_of_raising(monkeypatch) -> None:
    report, _ = _reconcile(
        monkeypatch,
        done(BLOG_NS),
        done("Warning: resourcequotas is deprecated\n{}"),
        done(BLOG_NS),
        done(BLOG_NS),
        done("namespace/blog labeled"),
    )
    assert report.statuses() == [ResultStatus.FAILED, ResultStatus.APPLIED]
    assert report.results[0].detail.startswith("unparseable kubectl output")
