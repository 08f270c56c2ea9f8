"""Errors raised by cluster clients."""

from __future__ import annotations


class ClusterError(RuntimeError):
    """A call against the cluster control plane failed."""


class PrerequisiteError(ClusterError):
    """The client cannot talk to the cluster at all; nothing should be attempted."""


class ApplyError(ClusterError):
    """A mutating call was rejected by the cluster API."""


class ClusterTimeout(ClusterError):
    """A call did not finish within the remaining run budget."""
