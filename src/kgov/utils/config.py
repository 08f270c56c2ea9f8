"""Typed configuration loading for the reconciler."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from kgov.policy.models import PolicyObject

DEFAULT_CONFIG_PATH = "configs/policies.yaml"


class ReconcilerConfig(BaseModel):
    kubectl: str = "kubectl"
    context: Optional[str] = None
    kubeconfig: Optional[str] = None
    request_timeout: Optional[float] = 20.0
    run_timeout: Optional[float] = 300.0
    artifact_root: Optional[str] = "artifacts"

    def artifact_path(self, *parts: str) -> Optional[Path]:
        if not self.artifact_root:
            return None
        return Path(self.artifact_root).joinpath(*parts)


class PolicyConfig(BaseModel):
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    policies: List[PolicyObject] = Field(default_factory=list)

    def ordered_policies(self) -> List[PolicyObject]:
        return sorted(self.policies, key=lambda p: p.apply_order)


def load_yaml(path: str | Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def resolve_config_path(path: Optional[str] = None) -> str:
    return path or os.environ.get("KGOV_CONFIG") or DEFAULT_CONFIG_PATH


def load_policy_config(path: Optional[str] = None) -> PolicyConfig:
    config_path = resolve_config_path(path)
    data = load_yaml(config_path)
    if "policies" not in data:
        raise ValueError(f"Invalid config file, expected 'policies' root at {config_path}")
    if not data["policies"]:
        raise ValueError(f"No policies defined in {config_path}")
    return PolicyConfig(**data)
