"""Diagnosis lifecycle controller and the work queue that drives it."""

from kubediag.controller.lifecycle import DiagnosisController
from kubediag.controller.queue import WorkQueue

__all__ = ["DiagnosisController", "WorkQueue"]
