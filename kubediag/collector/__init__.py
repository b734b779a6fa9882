"""Watch streams that feed the controllers' work queues."""

from kubediag.collector.diagnosis_watcher import DiagnosisWatcher
from kubediag.collector.pod_watcher import PodWatcher
from kubediag.collector.watcher import BaseWatcher

__all__ = ["BaseWatcher", "DiagnosisWatcher", "PodWatcher"]
