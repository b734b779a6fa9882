"""Pod failure detection and PodDiagnosis creation."""

from kubediag.detector.classify import failure_reason, is_pod_failed, should_trigger
from kubediag.detector.failure_detector import FailureDetector

__all__ = ["FailureDetector", "failure_reason", "is_pod_failed", "should_trigger"]
