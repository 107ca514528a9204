"""Remote exec sessions used as the source for the stdin bridge."""

from __future__ import annotations

from .pod_exec import KubernetesExecSession, KubernetesPodExec, load_core_api
from .types import PodExec, PodExecParams, RemoteSession

__all__ = [
    "KubernetesExecSession",
    "KubernetesPodExec",
    "PodExec",
    "PodExecParams",
    "RemoteSession",
    "load_core_api",
]
