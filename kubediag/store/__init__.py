"""API server access for pods, logs, events, and PodDiagnosis resources."""

from kubediag.store.accessor import LogFetchError, ResourceStore, StoreConflictError, StoreError
from kubediag.store.merge_patch import create_merge_patch, diagnosis_status_patch

__all__ = [
    "LogFetchError",
    "ResourceStore",
    "StoreConflictError",
    "StoreError",
    "create_merge_patch",
    "diagnosis_status_patch",
]
