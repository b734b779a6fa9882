"""Tests for kubediag.detector.classify: failure classification and trigger edges."""

from __future__ import annotations

from kubernetes_asyncio.client import (
    V1ContainerState,
    V1ContainerStateRunning,
    V1ContainerStateTerminated,
    V1ContainerStateWaiting,
    V1ContainerStatus,
    V1ObjectMeta,
    V1Pod,
    V1PodCondition,
    V1PodStatus,
)

from kubediag.detector.classify import UNKNOWN_FAILURE, failure_reason, is_pod_failed, should_trigger
from kubediag.models.events import PodAdded, PodDeleted, PodModified

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _running(name: str = "app") -> V1ContainerStatus:
    return V1ContainerStatus(
        name=name,
        image="busybox",
        image_id="",
        ready=True,
        restart_count=0,
        state=V1ContainerState(running=V1ContainerStateRunning()),
    )


def _waiting(reason: str, name: str = "app", message: str | None = None) -> V1ContainerStatus:
    return V1ContainerStatus(
        name=name,
        image="busybox",
        image_id="",
        ready=False,
        restart_count=3,
        state=V1ContainerState(waiting=V1ContainerStateWaiting(reason=reason, message=message)),
    )


def _terminated(exit_code: int, name: str = "app", reason: str | None = None) -> V1ContainerStatus:
    return V1ContainerStatus(
        name=name,
        image="busybox",
        image_id="",
        ready=False,
        restart_count=0,
        state=V1ContainerState(terminated=V1ContainerStateTerminated(exit_code=exit_code, reason=reason)),
    )


def _pod(
    phase: str = "Running",
    statuses: list[V1ContainerStatus] | None = None,
    conditions: list[V1PodCondition] | None = None,
) -> V1Pod:
    return V1Pod(
        metadata=V1ObjectMeta(name="api-7d9f", namespace="default", uid="uid-1"),
        status=V1PodStatus(phase=phase, container_statuses=statuses, conditions=conditions),
    )


def _unschedulable(message: str = "0/3 nodes are available: insufficient cpu") -> V1PodCondition:
    return V1PodCondition(type="PodScheduled", status="False", reason="Unschedulable", message=message)


# ---------------------------------------------------------------------------
# is_pod_failed
# ---------------------------------------------------------------------------


class TestIsPodFailed:
    def test_failed_phase(self) -> None:
        assert is_pod_failed(_pod(phase="Failed")) is True

    def test_healthy_running_pod(self) -> None:
        assert is_pod_failed(_pod(statuses=[_running()])) is False

    def test_pending_without_signals_is_not_failed(self) -> None:
        assert is_pod_failed(_pod(phase="Pending")) is False

    def test_pending_container_creating_is_not_failed(self) -> None:
        assert is_pod_failed(_pod(phase="Pending", statuses=[_waiting("ContainerCreating")])) is False

    def test_pending_unschedulable(self) -> None:
        assert is_pod_failed(_pod(phase="Pending", conditions=[_unschedulable()])) is True

    def test_scheduled_condition_true_is_not_unschedulable(self) -> None:
        cond = V1PodCondition(type="PodScheduled", status="True")
        assert is_pod_failed(_pod(phase="Pending", conditions=[cond])) is False

    def test_pending_image_pull_backoff(self) -> None:
        assert is_pod_failed(_pod(phase="Pending", statuses=[_waiting("ImagePullBackOff")])) is True

    def test_pending_err_image_pull(self) -> None:
        assert is_pod_failed(_pod(phase="Pending", statuses=[_waiting("ErrImagePull")])) is True

    def test_running_crash_loop_backoff(self) -> None:
        pod = _pod(statuses=[_running("sidecar"), _waiting("CrashLoopBackOff")])
        assert is_pod_failed(pod) is True

    def test_running_create_container_error(self) -> None:
        assert is_pod_failed(_pod(statuses=[_waiting("CreateContainerError")])) is True

    def test_image_pull_backoff_outside_pending_is_not_failed(self) -> None:
        assert is_pod_failed(_pod(statuses=[_waiting("ImagePullBackOff")])) is False

    def test_all_terminated_with_non_zero_exit(self) -> None:
        pod = _pod(statuses=[_terminated(0, name="init"), _terminated(137, reason="OOMKilled")])
        assert is_pod_failed(pod) is True

    def test_all_terminated_successfully_is_not_failed(self) -> None:
        pod = _pod(phase="Succeeded", statuses=[_terminated(0), _terminated(0, name="b")])
        assert is_pod_failed(pod) is False

    def test_non_zero_exit_with_running_container_is_not_failed(self) -> None:
        pod = _pod(statuses=[_terminated(1), _running("b")])
        assert is_pod_failed(pod) is False

    def test_zero_containers_is_not_failed(self) -> None:
        assert is_pod_failed(_pod(statuses=[])) is False

    def test_pod_without_status(self) -> None:
        assert is_pod_failed(V1Pod(metadata=V1ObjectMeta(name="x", namespace="default"))) is False


# ---------------------------------------------------------------------------
# failure_reason
# ---------------------------------------------------------------------------


class TestFailureReason:
    def test_unschedulable_message(self) -> None:
        pod = _pod(phase="Pending", conditions=[_unschedulable("0/3 nodes are available")])
        assert failure_reason(pod) == "Unschedulable: 0/3 nodes are available"

    def test_non_zero_exit(self) -> None:
        pod = _pod(statuses=[_terminated(137, reason="OOMKilled")])
        assert failure_reason(pod) == "container app exited with code 137: OOMKilled"

    def test_non_zero_exit_without_reason(self) -> None:
        pod = _pod(statuses=[_terminated(2)])
        assert failure_reason(pod) == "container app exited with code 2: Error"

    def test_crash_loop_backoff_is_named(self) -> None:
        pod = _pod(statuses=[_waiting("CrashLoopBackOff", message="back-off 5m0s restarting failed container")])
        reason = failure_reason(pod)
        assert "CrashLoopBackOff" in reason
        assert reason.startswith("container app is waiting")

    def test_unknown_failure(self) -> None:
        assert failure_reason(_pod(phase="Failed")) == UNKNOWN_FAILURE


# ---------------------------------------------------------------------------
# should_trigger
# ---------------------------------------------------------------------------


class TestShouldTrigger:
    def test_added_failed_pod_triggers(self) -> None:
        assert should_trigger(PodAdded(pod=_pod(phase="Failed"))) is True

    def test_added_healthy_pod_does_not_trigger(self) -> None:
        assert should_trigger(PodAdded(pod=_pod(statuses=[_running()]))) is False

    def test_rising_edge_triggers(self) -> None:
        old = _pod(statuses=[_running()])
        new = _pod(statuses=[_waiting("CrashLoopBackOff")])
        assert should_trigger(PodModified(old=old, new=new)) is True

    def test_repeated_failed_state_does_not_retrigger(self) -> None:
        old = _pod(statuses=[_waiting("CrashLoopBackOff")])
        new = _pod(statuses=[_waiting("CrashLoopBackOff", message="back-off 5m0s")])
        assert should_trigger(PodModified(old=old, new=new)) is False

    def test_recovery_does_not_trigger(self) -> None:
        old = _pod(phase="Failed")
        new = _pod(statuses=[_running()])
        assert should_trigger(PodModified(old=old, new=new)) is False

    def test_healthy_update_does_not_trigger(self) -> None:
        old = _pod(statuses=[_running()])
        new = _pod(statuses=[_running()])
        assert should_trigger(PodModified(old=old, new=new)) is False

    def test_deletion_never_triggers(self) -> None:
        assert should_trigger(PodDeleted(pod=_pod(phase="Failed"))) is False
