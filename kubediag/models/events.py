"""Typed pod change events.

The pod watcher turns raw watch stream entries into one of these variants so
that trigger decisions are pure functions over typed inputs. ``PodModified``
carries the previously observed pod, which the raw watch stream does not.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from kubernetes_asyncio.client import V1Pod


@dataclass(frozen=True)
class PodAdded:
    """A pod observed for the first time (creation or initial list)."""

    pod: V1Pod


@dataclass(frozen=True)
class PodModified:
    """A pod changed; ``old`` is the last state seen before ``new``."""

    old: V1Pod
    new: V1Pod


@dataclass(frozen=True)
class PodDeleted:
    """A pod was removed from the cluster."""

    pod: V1Pod


PodEvent: TypeAlias = PodAdded | PodModified | PodDeleted


def pod_key(pod: V1Pod) -> tuple[str, str] | None:
    """Return ``(namespace, name)`` for a pod, or None if it has no name."""
    metadata = pod.metadata
    if metadata is None or not metadata.name:
        return None
    return (metadata.namespace or "", metadata.name)
