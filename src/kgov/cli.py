"""kgov command line interface."""

from __future__ import annotations

from typing import Optional

import typer

from kgov.cluster.client import ClusterClient
from kgov.cluster.errors import PrerequisiteError
from kgov.cluster.kubectl import KubectlClient
from kgov.monitoring.metrics import write_metrics
from kgov.policy.models import Mode
from kgov.policy.reconciler import PolicyReconciler
from kgov.policy.report import render_report, report_to_dict
from kgov.utils.config import ReconcilerConfig, load_policy_config
from kgov.utils.io import atomic_write_json
from kgov.utils.logging import configure_logging, get_logger

configure_logging()
LOG = get_logger(__name__)

app = typer.Typer(add_completion=False)


def build_client(cfg: ReconcilerConfig) -> ClusterClient:
    return KubectlClient(
        kubectl=cfg.kubectl,
        context=cfg.context,
        kubeconfig=cfg.kubeconfig,
        request_timeout=cfg.request_timeout,
    )


@app.command()
def reconcile(
    dry_run: bool = typer.Option(False, "--dry-run", help="Report what would change without mutating the cluster"),
    config: Optional[str] = typer.Option(None, help="Policy config file (default: $KGOV_CONFIG or configs/policies.yaml)"),
    timeout: Optional[float] = typer.Option(None, help="Run deadline in seconds, overrides reconciler.run_timeout"),
    report: Optional[str] = typer.Option(None, help="Also write the JSON report to this path"),
    metrics_file: Optional[str] = typer.Option(None, help="Write Prometheus textfile metrics to this path"),
) -> None:
    """Converge the cluster toward the configured policy set."""
    cfg = load_policy_config(config)
    reconciler = PolicyReconciler(build_client(cfg.reconciler))
    mode = Mode.DRY_RUN if dry_run else Mode.APPLY
    run_timeout = timeout if timeout is not None else cfg.reconciler.run_timeout
    try:
        result = reconciler.run(mode, cfg.policies, timeout=run_timeout)
    except PrerequisiteError as exc:
        LOG.error("Prerequisite check failed", extra={"error": str(exc)})
        typer.echo(f"Prerequisite check failed: {exc}", err=True)
        raise typer.Exit(code=1)

    for line in render_report(result):
        typer.echo(line)

    data = report_to_dict(result)
    run_report = cfg.reconciler.artifact_path("runs", result.run_id, "report.json")
    if run_report is not None:
        atomic_write_json(run_report, data)
    if report:
        atomic_write_json(report, data)
    if metrics_file:
        write_metrics(metrics_file)
    raise typer.Exit(code=result.exit_code)


@app.command()
def check(config: Optional[str] = typer.Option(None, help="Policy config file")) -> None:
    """Verify kubectl is available and the cluster answers."""
    cfg = load_policy_config(config)
    try:
        build_client(cfg.reconciler).check_prerequisites(timeout=cfg.reconciler.request_timeout)
    except PrerequisiteError as exc:
        typer.echo(f"Prerequisite check failed: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo("Prerequisites check passed")


@app.command()
def policies(config: Optional[str] = typer.Option(None, help="Policy config file")) -> None:
    """List configured policy objects in apply order."""
    cfg = load_policy_config(config)
    for obj in cfg.ordered_policies():
        typer.echo(f"{obj.apply_order:>4} {obj.kind} {obj.display_name}")


if __name__ == "__main__":
    app()
