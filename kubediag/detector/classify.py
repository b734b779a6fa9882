"""Pod failure classification and the trigger predicate.

All functions here are pure: they look only at the pod objects they are
given and never touch the API server.
"""

from __future__ import annotations

from kubernetes_asyncio.client import V1ContainerStatus, V1Pod

from kubediag.models.events import PodAdded, PodDeleted, PodEvent, PodModified

# Waiting reasons that mark a pending pod as failed
_PENDING_FAILURE_REASONS: frozenset[str] = frozenset(
    {"ImagePullBackOff", "ErrImagePull", "CrashLoopBackOff", "CreateContainerError"}
)

# Waiting reasons that mark a pod as failed even while other containers run
_WAITING_FAILURE_REASONS: frozenset[str] = frozenset({"CrashLoopBackOff", "CreateContainerError"})

_PHASE_FAILED: str = "Failed"
_PHASE_PENDING: str = "Pending"
_CONDITION_POD_SCHEDULED: str = "PodScheduled"
_REASON_UNSCHEDULABLE: str = "Unschedulable"

UNKNOWN_FAILURE: str = "unknown failure"


def is_pod_failed(pod: V1Pod) -> bool:
    """Return True if the pod is in a state worth diagnosing.

    A pod is failed when:

    1. its phase is ``Failed``;
    2. it is ``Pending`` and either unschedulable or has a container waiting
       on an image pull, crash loop, or container creation error;
    3. all containers terminated and at least one exited non-zero, or a
       container that has not terminated is waiting in ``CrashLoopBackOff``
       or ``CreateContainerError``.
    """
    phase = _phase(pod)
    if phase == _PHASE_FAILED:
        return True

    statuses = _container_statuses(pod)

    if phase == _PHASE_PENDING:
        if _unschedulable_message(pod) is not None:
            return True
        if any(_waiting_reason(cs) in _PENDING_FAILURE_REASONS for cs in statuses):
            return True

    all_terminated = True
    has_non_zero = False
    for cs in statuses:
        terminated = cs.state.terminated if cs.state is not None else None
        if terminated is None:
            all_terminated = False
            if _waiting_reason(cs) in _WAITING_FAILURE_REASONS:
                return True
        elif (terminated.exit_code or 0) != 0:
            has_non_zero = True

    return all_terminated and has_non_zero


def failure_reason(pod: V1Pod) -> str:
    """Summarise why the pod is failed, for the diagnosis trigger reason."""
    message = _unschedulable_message(pod)
    if message is not None:
        return f"Unschedulable: {message}" if message else "Unschedulable"

    statuses = _container_statuses(pod)
    for cs in statuses:
        terminated = cs.state.terminated if cs.state is not None else None
        if terminated is not None and (terminated.exit_code or 0) != 0:
            return f"container {cs.name} exited with code {terminated.exit_code}: {terminated.reason or 'Error'}"

    for cs in statuses:
        reason = _waiting_reason(cs)
        if reason in _PENDING_FAILURE_REASONS:
            waiting = cs.state.waiting
            detail = f": {waiting.message}" if waiting.message else ""
            return f"container {cs.name} is waiting: {reason}{detail}"

    return UNKNOWN_FAILURE


def should_trigger(event: PodEvent) -> bool:
    """Rising-edge trigger: fire only when a pod becomes failed.

    Creation fires if the pod is already failed; an update fires only on a
    not-failed to failed transition; deletion never fires.
    """
    if isinstance(event, PodAdded):
        return is_pod_failed(event.pod)
    if isinstance(event, PodModified):
        return not is_pod_failed(event.old) and is_pod_failed(event.new)
    if isinstance(event, PodDeleted):
        return False
    return False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _phase(pod: V1Pod) -> str:
    if pod.status is None:
        return ""
    return pod.status.phase or ""


def _container_statuses(pod: V1Pod) -> list[V1ContainerStatus]:
    if pod.status is None:
        return []
    return list(pod.status.container_statuses or [])


def _waiting_reason(cs: V1ContainerStatus) -> str:
    if cs.state is None or cs.state.waiting is None:
        return ""
    return cs.state.waiting.reason or ""


def _unschedulable_message(pod: V1Pod) -> str | None:
    """Return the scheduler's message if the pod is unschedulable, else None."""
    if _phase(pod) != _PHASE_PENDING or pod.status is None:
        return None
    for cond in pod.status.conditions or []:
        if cond.type == _CONDITION_POD_SCHEDULED and cond.status == "False" and cond.reason == _REASON_UNSCHEDULABLE:
            return cond.message or ""
    return None
